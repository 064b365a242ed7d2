from __future__ import annotations

import random
from typing import Optional, Tuple

from app.api.localizacao.models.coordenadas import Track, TrackPoint


class SyntheticPathGenerator:
    """
    Rota simulada do entregador quando não existe telemetria real.

    Interpola linearmente `waypoints` segmentos entre a origem (sede) e o
    destino, somando um ruído uniforme pequeno aos pontos intermediários
    para a linha não ficar perfeitamente reta. O primeiro ponto é a origem
    e o último é o destino, totalizando `waypoints + 1` pontos.
    """

    def __init__(
        self,
        origin: TrackPoint,
        destination: TrackPoint,
        *,
        waypoints: int = 60,
        jitter_degrees: float = 0.0003,
        rng: Optional[random.Random] = None,
    ) -> None:
        if waypoints < 1:
            raise ValueError("waypoints deve ser >= 1")
        if jitter_degrees < 0:
            raise ValueError("jitter_degrees não pode ser negativo")

        self.origin = origin
        self.destination = destination
        self.waypoints = waypoints
        self.jitter_degrees = jitter_degrees
        self._rng = rng or random.Random()
        self._points = self._build()
        self._cursor = 0

    def _build(self) -> Track:
        points = []
        dlat = self.destination.lat - self.origin.lat
        dlng = self.destination.lng - self.origin.lng
        for i in range(self.waypoints + 1):
            t = i / self.waypoints
            lat = self.origin.lat + dlat * t
            lng = self.origin.lng + dlng * t
            if 0 < i < self.waypoints and self.jitter_degrees:
                lat += self._rng.uniform(-self.jitter_degrees, self.jitter_degrees)
                lng += self._rng.uniform(-self.jitter_degrees, self.jitter_degrees)
            points.append(TrackPoint(lat=lat, lng=lng))
        return tuple(points)

    @property
    def points(self) -> Tuple[TrackPoint, ...]:
        return self._points

    @property
    def emitted(self) -> int:
        return self._cursor

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._points)

    def next_point(self) -> Optional[TrackPoint]:
        """Avança um ponto; None quando a rota já terminou."""
        if self.exhausted:
            return None
        point = self._points[self._cursor]
        self._cursor += 1
        return point
