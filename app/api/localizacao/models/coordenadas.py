import math
from pydantic import BaseModel, ConfigDict
from typing import Any, Optional, Tuple


class TrackPoint(BaseModel):
    """Value Object para uma posição do entregador (latitude/longitude)."""
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    def to_tuple(self) -> Tuple[float, float]:
        """Converte para tupla (lat, lng)."""
        return (self.lat, self.lng)

    @classmethod
    def from_tuple(cls, coords: Tuple[Optional[float], Optional[float]]) -> Optional["TrackPoint"]:
        """Cria a partir de uma tupla (lat, lng)."""
        if coords is None or len(coords) != 2:
            return None
        return cls.parse_loose({"lat": coords[0], "lng": coords[1]})

    @classmethod
    def parse_loose(cls, data: Any) -> Optional["TrackPoint"]:
        """
        Converte o formato que vier do backend em TrackPoint.

        Aceita `lat`/`lng`, `lat`/`lon` e `latitude`/`longitude`.
        Retorna None para coordenadas ausentes, não numéricas, NaN ou infinitas.
        """
        if isinstance(data, TrackPoint):
            return data
        if not isinstance(data, dict):
            return None

        lat = _first_present(data, "lat", "latitude")
        lng = _first_present(data, "lng", "lon", "longitude")
        try:
            lat = float(lat)
            lng = float(lng)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            return None
        return cls(lat=lat, lng=lng)


def _first_present(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# Snapshot imutável da rota; cresce apenas por cópia
Track = Tuple[TrackPoint, ...]
