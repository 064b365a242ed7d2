"""
Cálculos geográficos usados no rastreamento: distância haversine, ETA e formatação.
"""
from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from app.api.localizacao.models.coordenadas import TrackPoint

EARTH_RADIUS_METERS = 6_371_000.0
DEFAULT_SPEED_KMH = 25.0


def _validar(point: Optional[TrackPoint], nome: str) -> None:
    if point is None:
        raise ValueError(f"{nome} não informado")
    if not (math.isfinite(point.lat) and math.isfinite(point.lng)):
        raise ValueError(f"{nome} com coordenadas inválidas: {point.to_tuple()}")


def haversine_meters(a: TrackPoint, b: TrackPoint) -> float:
    """
    Distância de grande círculo em metros (Terra esférica, raio médio 6.371 km).

    Coordenadas ausentes ou NaN são rejeitadas com ValueError; quem chama
    deve decidir o que fazer quando não há ponto.
    """
    _validar(a, "origem")
    _validar(b, "destino")

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # min() protege contra h levemente > 1 por arredondamento
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def eta_seconds(distance_meters: Optional[float], speed_kmh: Optional[float] = DEFAULT_SPEED_KMH) -> Optional[float]:
    """Tempo estimado em segundos; None quando a distância não pôde ser calculada."""
    if distance_meters is None:
        return None
    if speed_kmh is None:
        speed_kmh = DEFAULT_SPEED_KMH
    return distance_meters / max(speed_kmh, 1) / 1000 * 3600


def distance_and_eta(
    point: Optional[TrackPoint],
    destination: Optional[TrackPoint],
    speed_kmh: Optional[float] = DEFAULT_SPEED_KMH,
) -> Tuple[Optional[float], Optional[float]]:
    """Retorna (distância em metros, ETA em segundos) ou (None, None) sem origem/destino."""
    if point is None or destination is None:
        return None, None
    meters = haversine_meters(point, destination)
    return meters, eta_seconds(meters, speed_kmh)


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "—"
    total = int(round(seconds))
    if total < 60:
        return f"{total} s"
    minutes = total // 60
    if minutes < 60:
        return f"{minutes} min"
    hours, minutes = divmod(minutes, 60)
    return f"{hours} h {minutes:02d} min"


def format_distance(meters: Optional[float]) -> str:
    if meters is None or not math.isfinite(meters):
        return "—"
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000:.2f} km"


def format_price(amount: Optional[Decimal | float | int]) -> str:
    """Formata valor em soles (S/ 12.50)."""
    valor = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"S/ {valor}"
