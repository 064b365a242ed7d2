import math

import pytest

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.localizacao.utils.geo import (
    distance_and_eta,
    eta_seconds,
    format_distance,
    format_duration,
    format_price,
    haversine_meters,
)

O = TrackPoint(lat=-12.1372, lng=-77.0220)
D = TrackPoint(lat=-12.0464, lng=-77.0428)


def test_haversine_same_point_is_zero():
    assert haversine_meters(O, O) == 0
    assert haversine_meters(D, D) == 0


def test_haversine_is_symmetric():
    assert haversine_meters(O, D) == pytest.approx(haversine_meters(D, O))


def test_haversine_known_distance():
    # Barranco -> Centro de Lima, ~10.3 km
    assert haversine_meters(O, D) == pytest.approx(10_347, rel=0.01)


def test_haversine_rejects_nan_and_missing():
    with pytest.raises(ValueError):
        haversine_meters(TrackPoint(lat=math.nan, lng=0.0), D)
    with pytest.raises(ValueError):
        haversine_meters(None, D)


def test_eta_seconds():
    assert eta_seconds(10_000) == pytest.approx(1440)
    assert eta_seconds(10_000, 50) == pytest.approx(720)
    # Velocidade mínima de 1 km/h
    assert eta_seconds(1_000, 0) == pytest.approx(3600)
    assert eta_seconds(None) is None


def test_distance_and_eta_without_point():
    assert distance_and_eta(None, D) == (None, None)
    assert distance_and_eta(O, None) == (None, None)
    meters, eta = distance_and_eta(O, D, 25)
    assert meters == pytest.approx(haversine_meters(O, D))
    assert eta == pytest.approx(eta_seconds(meters, 25))


def test_format_helpers():
    assert format_duration(45) == "45 s"
    assert format_duration(720) == "12 min"
    assert format_duration(3900) == "1 h 05 min"
    assert format_duration(None) == "—"
    assert format_distance(850.4) == "850 m"
    assert format_distance(2400) == "2.40 km"
    assert format_price(12.5) == "S/ 12.50"


def test_track_point_parse_loose():
    assert TrackPoint.parse_loose({"lat": "-12.1", "lon": -77}) == TrackPoint(lat=-12.1, lng=-77.0)
    assert TrackPoint.parse_loose({"latitude": 1, "longitude": 2}) == TrackPoint(lat=1, lng=2)
    assert TrackPoint.parse_loose({"lat": None, "lng": 2}) is None
    assert TrackPoint.parse_loose({"lat": "nan", "lng": 2}) is None
    assert TrackPoint.parse_loose({"lat": 200, "lng": 2}) is None
    assert TrackPoint.parse_loose("x") is None
