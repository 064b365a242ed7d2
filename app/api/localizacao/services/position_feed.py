"""
Feed de posição do entregador.

Mantém uma rota (Track) que só cresce, alimentada pela telemetria real
(polling do backend) ou, na ausência dela, pela rota sintética. Cada mudança
publica um snapshot imutável para os assinantes; nada é mutado no lugar.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

from app.api.localizacao.contracts.telemetria_contract import ITelemetrySource
from app.api.localizacao.models.coordenadas import Track, TrackPoint
from app.api.localizacao.services.synthetic_path import SyntheticPathGenerator
from app.api.shared.exceptions import BackendUnavailableError
from app.config import settings
from app.utils.prometheus_metrics import synthetic_fallback_total, telemetry_polls_total

logger = logging.getLogger(__name__)


class FeedMode(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"  # sem fonte de telemetria, aguardando a carência
    TELEMETRY = "telemetry"
    SYNTHETIC = "synthetic"
    STOPPED = "stopped"


@dataclass(frozen=True)
class FallbackPolicy:
    """
    Quando trocar a telemetria pela rota sintética.

    - `grace_seconds`: carência contada a partir do start (destino disponível).
    - `min_empty_polls`: consultas bem-sucedidas e vazias exigidas após a carência.
    - `errors_count_as_absence`: se falhas de transporte contam como ausência.

    Uma vez na rota sintética, a sessão não volta para a telemetria.
    """
    enabled: bool = True
    grace_seconds: float = 2.0
    min_empty_polls: int = 1
    errors_count_as_absence: bool = False

    @classmethod
    def from_settings(cls) -> "FallbackPolicy":
        return cls(
            enabled=settings.SYNTHETIC_FALLBACK_ENABLED,
            grace_seconds=settings.SYNTHETIC_GRACE_SECONDS,
            min_empty_polls=settings.SYNTHETIC_MIN_EMPTY_POLLS,
            errors_count_as_absence=settings.SYNTHETIC_ERRORS_AS_ABSENCE,
        )


@dataclass(frozen=True)
class FeedUpdate:
    """Snapshot publicado aos assinantes a cada mudança do feed."""
    track: Track
    mode: FeedMode
    arrived: bool


FeedListener = Callable[[FeedUpdate], None]


def merge_telemetry(track: Track, points: List[TrackPoint]) -> Track:
    """
    Junta a resposta da telemetria à rota atual sem nunca encolhê-la.

    Resposta com vários pontos é tratada como a rota completa atual: só a
    cauda além do tamanho atual é anexada. Um ponto único é anexado quando
    difere do último ponto conhecido.
    """
    if not points:
        return track
    if len(points) == 1:
        if track and track[-1] == points[0]:
            return track
        return track + (points[0],)
    if len(points) <= len(track):
        return track
    return track + tuple(points[len(track):])


class PositionFeed:
    """Feed de posição de uma entrega. Só uma fonte fica ativa por vez."""

    def __init__(
        self,
        *,
        delivery_id: Optional[str] = None,
        telemetry: Optional[ITelemetrySource] = None,
        policy: Optional[FallbackPolicy] = None,
        poll_seconds: Optional[float] = None,
        tick_seconds: Optional[float] = None,
        waypoints: Optional[int] = None,
        jitter_degrees: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.delivery_id = delivery_id
        self.telemetry = telemetry
        self.policy = policy or FallbackPolicy.from_settings()
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.TRACKING_POLL_SECONDS
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.SYNTHETIC_TICK_SECONDS
        self.waypoints = waypoints if waypoints is not None else settings.SYNTHETIC_WAYPOINTS
        self.jitter_degrees = jitter_degrees if jitter_degrees is not None else settings.SYNTHETIC_JITTER_DEGREES
        self._rng = rng

        self._track: Track = ()
        self._mode = FeedMode.IDLE
        self._arrived = False
        self._stopped = False
        self._grace_elapsed = False
        self._empty_polls = 0
        self._error_polls = 0
        self._poll_inflight = False

        self._origin: Optional[TrackPoint] = None
        self._destination: Optional[TrackPoint] = None
        self._generator: Optional[SyntheticPathGenerator] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._grace_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

        self._listeners: List[FeedListener] = []
        self._streams: List[asyncio.Queue] = []

    # ───────────────────────── estado ─────────────────────────

    @property
    def track(self) -> Track:
        return self._track

    @property
    def mode(self) -> FeedMode:
        return self._mode

    @property
    def arrived(self) -> bool:
        return self._arrived

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def has_telemetry_source(self) -> bool:
        return self.telemetry is not None and bool(self.delivery_id)

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """Registra um assinante; retorna a função que cancela a assinatura."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ───────────────────────── ciclo de vida ─────────────────────────

    def start(self, origin: Optional[TrackPoint], destination: TrackPoint) -> AsyncIterator[Track]:
        """
        Arma os timers do feed e devolve o stream de snapshots da rota.

        Deve ser chamado dentro de um event loop em execução. `origin` pode ser
        None quando o tenant não tem sede configurada; nesse caso a rota
        sintética fica indisponível e só a telemetria alimenta o feed.
        """
        if self._mode is not FeedMode.IDLE:
            raise RuntimeError("PositionFeed já foi iniciado")
        if destination is None:
            raise ValueError("destination é obrigatório para iniciar o feed")

        self._origin = origin
        self._destination = destination

        if self.has_telemetry_source:
            self._mode = FeedMode.TELEMETRY
            self._poll_task = asyncio.create_task(self._poll_loop())
        else:
            self._mode = FeedMode.WAITING

        self._grace_task = asyncio.create_task(self._grace_timer())
        logger.info(
            "[PositionFeed] Iniciado delivery=%s modo=%s destino=%s",
            self.delivery_id,
            self._mode.value,
            destination.to_tuple(),
        )
        return self.stream()

    def stop(self) -> None:
        """
        Cancela timers pendentes e descarta o gerador sintético.

        Depois do retorno nenhum ponto é anexado; a rota fica como estava.
        """
        if self._stopped:
            return
        self._stopped = True
        for task in (self._poll_task, self._grace_task, self._tick_task):
            if task is not None and not task.done():
                task.cancel()
        self._poll_task = self._grace_task = self._tick_task = None
        self._generator = None
        self._mode = FeedMode.STOPPED
        self._close_streams()
        logger.info("[PositionFeed] Parado delivery=%s pontos=%s", self.delivery_id, len(self._track))

    async def stream(self) -> AsyncIterator[Track]:
        """Snapshots da rota a cada novo ponto, até a chegada ou o stop."""
        if self._stopped or self._arrived:
            if self._track:
                yield self._track
            return

        queue: asyncio.Queue = asyncio.Queue()
        self._streams.append(queue)
        try:
            if self._track:
                yield self._track
            while True:
                snapshot = await queue.get()
                if snapshot is None:
                    return
                yield snapshot
        finally:
            if queue in self._streams:
                self._streams.remove(queue)

    # ───────────────────────── telemetria ─────────────────────────

    async def _poll_loop(self) -> None:
        while not self._stopped and self._mode is FeedMode.TELEMETRY:
            await self.poll_once()
            if self._stopped or self._mode is not FeedMode.TELEMETRY:
                return
            await asyncio.sleep(self.poll_seconds)

    async def poll_once(self) -> None:
        """Uma consulta de telemetria; falhas contam como 'sem pontos novos'."""
        if self._poll_inflight or not self.has_telemetry_source or self._mode is not FeedMode.TELEMETRY:
            return

        self._poll_inflight = True
        try:
            points = await self.telemetry.fetch_delivery_track(self.delivery_id)
        except BackendUnavailableError as e:
            telemetry_polls_total.labels(outcome="error").inc()
            logger.warning("[PositionFeed] Falha ao consultar telemetria delivery=%s: %s", self.delivery_id, e)
            self._error_polls += 1
            points = None
        except Exception as e:  # noqa: BLE001
            telemetry_polls_total.labels(outcome="error").inc()
            logger.error(
                "[PositionFeed] Erro inesperado na telemetria delivery=%s: %s",
                self.delivery_id,
                e,
                exc_info=True,
            )
            self._error_polls += 1
            points = None
        finally:
            self._poll_inflight = False

        # stop() ou troca para sintético enquanto a consulta estava em voo
        if self._stopped or self._mode is not FeedMode.TELEMETRY:
            return

        if points is not None:
            merged = merge_telemetry(self._track, points)
            if len(merged) > len(self._track):
                telemetry_polls_total.labels(outcome="points").inc()
                self._publish(merged)
            else:
                telemetry_polls_total.labels(outcome="empty").inc()
                if not self._track:
                    self._empty_polls += 1

        self._maybe_fallback()

    # ───────────────────────── fallback ─────────────────────────

    async def _grace_timer(self) -> None:
        await asyncio.sleep(self.policy.grace_seconds)
        if self._stopped:
            return
        self._grace_elapsed = True
        self._maybe_fallback()

    def _telemetry_absent(self) -> bool:
        if not self.has_telemetry_source:
            return True
        absences = self._empty_polls
        if self.policy.errors_count_as_absence:
            absences += self._error_polls
        return absences >= max(self.policy.min_empty_polls, 1)

    def _maybe_fallback(self) -> None:
        if self._stopped or self._mode not in (FeedMode.WAITING, FeedMode.TELEMETRY):
            return
        if not self.policy.enabled or not self._grace_elapsed or self._track:
            return
        if not self._telemetry_absent():
            return
        if self._origin is None:
            logger.warning(
                "[PositionFeed] Sem telemetria e sem origem configurada; rota sintética indisponível delivery=%s",
                self.delivery_id,
            )
            return
        self._engage_synthetic()

    def _engage_synthetic(self) -> None:
        current = asyncio.current_task()
        if self._poll_task is not None and self._poll_task is not current and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

        self._mode = FeedMode.SYNTHETIC
        self._generator = SyntheticPathGenerator(
            self._origin,
            self._destination,
            waypoints=self.waypoints,
            jitter_degrees=self.jitter_degrees,
            rng=self._rng,
        )
        synthetic_fallback_total.inc()
        logger.info(
            "[PositionFeed] Sem telemetria após carência; usando rota sintética delivery=%s pontos=%s",
            self.delivery_id,
            len(self._generator.points),
        )
        self._advance_synthetic()
        if not self._stopped and not self._arrived:
            self._tick_task = asyncio.create_task(self._tick_loop())

    async def _tick_loop(self) -> None:
        while not self._stopped and not self._arrived:
            await asyncio.sleep(self.tick_seconds)
            if self._stopped:
                return
            self._advance_synthetic()

    def _advance_synthetic(self) -> None:
        if self._generator is None:
            return
        point = self._generator.next_point()
        if self._generator.exhausted:
            # O último ponto já é publicado como chegada
            self._arrived = True
        if point is not None:
            self._publish(self._track + (point,))
        if self._arrived:
            self._finish_arrival()

    def _finish_arrival(self) -> None:
        if self._generator is None:
            return
        self._generator = None
        logger.info("[PositionFeed] Rota sintética concluída delivery=%s", self.delivery_id)
        self._close_streams()

    # ───────────────────────── publicação ─────────────────────────

    def _publish(self, track: Track) -> None:
        if self._stopped:
            return
        self._track = track
        update = FeedUpdate(track=track, mode=self._mode, arrived=self._arrived)
        for queue in list(self._streams):
            queue.put_nowait(track)
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception as e:  # noqa: BLE001
                logger.error("[PositionFeed] Erro em assinante do feed: %s", e, exc_info=True)

    def _close_streams(self) -> None:
        for queue in list(self._streams):
            queue.put_nowait(None)
