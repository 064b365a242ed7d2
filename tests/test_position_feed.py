import asyncio
import random

import pytest

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.localizacao.services.position_feed import FallbackPolicy, FeedMode, PositionFeed, merge_telemetry
from app.api.shared.exceptions import BackendUnavailableError
from fakes import DESTINATION, ORIGIN, FakeBackend

A = TrackPoint(lat=-12.10, lng=-77.03)
B = TrackPoint(lat=-12.09, lng=-77.03)
C = TrackPoint(lat=-12.08, lng=-77.03)


def _feed(backend=None, delivery_id=None, **policy):
    policy.setdefault("grace_seconds", 0.0)
    return PositionFeed(
        delivery_id=delivery_id,
        telemetry=backend,
        policy=FallbackPolicy(enabled=True, **policy),
        poll_seconds=60,
        tick_seconds=0.001,
        waypoints=5,
        jitter_degrees=0.0003,
        rng=random.Random(3),
    )


def test_merge_telemetry_never_shrinks():
    assert merge_telemetry((), []) == ()
    assert merge_telemetry((A,), []) == (A,)
    assert merge_telemetry((A,), [B]) == (A, B)
    assert merge_telemetry((A, B), [B]) == (A, B)
    assert merge_telemetry((A,), [A, B, C]) == (A, B, C)
    assert merge_telemetry((A, B, C), [A, B]) == (A, B, C)


def test_synthetic_stream_grows_one_point_at_a_time():
    async def scenario():
        feed = _feed()
        lengths = [len(track) async for track in feed.start(ORIGIN, DESTINATION)]
        return feed, lengths

    feed, lengths = asyncio.run(scenario())
    assert lengths == [1, 2, 3, 4, 5, 6]
    assert feed.mode is FeedMode.SYNTHETIC
    assert feed.arrived
    assert feed.track[0] == ORIGIN
    assert feed.track[-1].lat == pytest.approx(DESTINATION.lat)


def test_telemetry_points_prevent_fallback():
    backend = FakeBackend(tracks={"d1": [{"lat": A.lat, "lng": A.lng}, {"lat": B.lat, "lon": B.lng}]})

    async def scenario():
        feed = _feed(backend, "d1")
        feed.start(ORIGIN, DESTINATION)
        await asyncio.sleep(0.05)
        feed.stop()
        return feed

    feed = asyncio.run(scenario())
    assert feed.track == (A, B)
    assert backend.calls["track"] == 1


def test_empty_telemetry_engages_synthetic_after_grace():
    backend = FakeBackend(tracks={})

    async def scenario():
        feed = _feed(backend, "d1")
        feed.start(ORIGIN, DESTINATION)
        await asyncio.sleep(0.1)
        return feed

    feed = asyncio.run(scenario())
    assert feed.mode is FeedMode.SYNTHETIC
    assert feed.arrived
    assert len(feed.track) == 6


def test_transport_errors_alone_do_not_engage_synthetic():
    backend = FakeBackend()
    backend.errors["track"] = BackendUnavailableError("sem rede")

    async def scenario():
        feed = _feed(backend, "d1")
        feed.start(ORIGIN, DESTINATION)
        await asyncio.sleep(0.05)
        mode = feed.mode
        feed.stop()
        return feed, mode

    feed, mode = asyncio.run(scenario())
    assert mode is FeedMode.TELEMETRY
    assert feed.track == ()


def test_transport_errors_count_as_absence_when_configured():
    backend = FakeBackend()
    backend.errors["track"] = BackendUnavailableError("sem rede")

    async def scenario():
        feed = _feed(backend, "d1", errors_count_as_absence=True)
        feed.start(ORIGIN, DESTINATION)
        await asyncio.sleep(0.1)
        return feed

    feed = asyncio.run(scenario())
    assert feed.mode is FeedMode.SYNTHETIC
    assert feed.arrived


def test_no_synthetic_without_origin():
    async def scenario():
        feed = _feed()
        feed.start(None, DESTINATION)
        await asyncio.sleep(0.05)
        mode = feed.mode
        feed.stop()
        return mode, feed

    mode, feed = asyncio.run(scenario())
    assert mode is FeedMode.WAITING
    assert feed.track == ()


def test_disabled_policy_never_engages_synthetic():
    async def scenario():
        feed = PositionFeed(policy=FallbackPolicy(enabled=False, grace_seconds=0), tick_seconds=0.001)
        feed.start(ORIGIN, DESTINATION)
        await asyncio.sleep(0.05)
        mode = feed.mode
        feed.stop()
        return mode

    assert asyncio.run(scenario()) is FeedMode.WAITING


def test_stop_mid_sequence_freezes_track_and_ends_stream():
    async def scenario():
        feed = PositionFeed(
            policy=FallbackPolicy(enabled=True, grace_seconds=0),
            tick_seconds=0.01,
            waypoints=50,
            jitter_degrees=0,
        )
        seen = []
        async for track in feed.start(ORIGIN, DESTINATION):
            seen.append(len(track))
            if len(track) == 3:
                feed.stop()
        frozen = feed.track
        await asyncio.sleep(0.05)
        return feed, seen, frozen

    feed, seen, frozen = asyncio.run(scenario())
    assert seen == [1, 2, 3]
    assert feed.stopped
    assert feed.mode is FeedMode.STOPPED
    assert feed.track == frozen
    assert len(feed.track) == 3


def test_subscribers_receive_updates_and_can_unsubscribe():
    updates = []

    async def scenario():
        feed = _feed()
        unsubscribe = feed.subscribe(updates.append)

        def broken(_update):
            raise RuntimeError("assinante quebrado")

        feed.subscribe(broken)
        async for track in feed.start(ORIGIN, DESTINATION):
            if len(track) == 2:
                unsubscribe()
        return feed

    asyncio.run(scenario())
    assert [len(u.track) for u in updates] == [1, 2]
    assert all(u.mode is FeedMode.SYNTHETIC for u in updates)


def test_start_twice_and_missing_destination():
    async def scenario():
        feed = _feed()
        with pytest.raises(ValueError):
            feed.start(ORIGIN, None)
        feed.start(ORIGIN, DESTINATION)
        with pytest.raises(RuntimeError):
            feed.start(ORIGIN, DESTINATION)
        feed.stop()

    asyncio.run(scenario())


def test_sixty_waypoints_emit_sixty_one_points_then_arrive():
    async def scenario():
        feed = PositionFeed(
            policy=FallbackPolicy(enabled=True, grace_seconds=0),
            tick_seconds=0.001,
            waypoints=60,
            rng=random.Random(11),
        )
        lengths = [len(track) async for track in feed.start(ORIGIN, DESTINATION)]
        return feed, lengths

    feed, lengths = asyncio.run(scenario())
    assert lengths == list(range(1, 62))
    assert feed.arrived
    assert feed.track[0] == ORIGIN
    assert feed.track[-1].lat == pytest.approx(DESTINATION.lat)
    assert feed.track[-1].lng == pytest.approx(DESTINATION.lng)
