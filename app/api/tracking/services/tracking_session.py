"""
Sessão de rastreamento de um pedido.

Orquestra a busca do snapshot do pedido (status + detalhes), aplica a
reconciliação de status a cada atualização e mantém o feed de posição do
entregador. Expõe uma única `TrackingView`, reconstruída por inteiro a cada
mudança.

Estados: idle -> fetching -> tracking -> terminal. Um novo ID a partir de
qualquer estado desmonta o feed e os timers anteriores antes de buscar.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.localizacao.services.position_feed import FeedMode, FeedUpdate, PositionFeed
from app.api.localizacao.utils.geo import distance_and_eta, format_distance, format_duration, format_price
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.pedidos.schemas.schema_pedido_tracking import OrderDetails, OrderSnapshot
from app.api.pedidos.schemas.schema_status import CanonicalStatus
from app.api.pedidos.services import service_status_reconciler as reconciler
from app.api.shared.exceptions import (
    ActionNotAllowedError,
    BackendUnavailableError,
    InvalidOrderIdError,
    OrderNotFoundError,
    TrackingError,
)
from app.api.tracking.schemas.schema_tracking_view import SessionState, TrackingView
from app.config import settings
from app.utils.prometheus_metrics import order_refresh_total

logger = logging.getLogger(__name__)

FeedFactory = Callable[[Optional[str], IPedidosBackend], PositionFeed]
ViewListener = Callable[[TrackingView], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_feed_factory(delivery_id: Optional[str], backend: IPedidosBackend) -> PositionFeed:
    return PositionFeed(delivery_id=delivery_id, telemetry=backend)


@dataclass
class TrackingContext:
    """Dependências explícitas da sessão (nada é buscado ad hoc de estado global)."""
    backend: IPedidosBackend
    origin: Optional[TrackPoint] = None
    speed_kmh: float = settings.DEFAULT_SPEED_KMH
    order_refresh_seconds: float = settings.ORDER_REFRESH_SECONDS
    feed_factory: FeedFactory = field(default=_default_feed_factory)
    clock: Callable[[], datetime] = field(default=_utcnow)
    owns_backend: bool = False


class OrderTrackingSession:
    """Rastreamento de um pedido por vez; cada sessão tem sua própria rota e timers."""

    def __init__(self, context: TrackingContext):
        self.context = context
        self._state = SessionState.IDLE
        self._order_id: Optional[str] = None
        self._delivery_override: Optional[str] = None
        self._delivery_id: Optional[str] = None
        self._snapshot: Optional[OrderSnapshot] = None
        self._status: Optional[CanonicalStatus] = None
        self._view: Optional[TrackingView] = None
        self._last_error: Optional[str] = None

        self._feed: Optional[PositionFeed] = None
        self._feed_unsubscribe: Optional[Callable[[], None]] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._fetch_task: Optional[asyncio.Task] = None
        self._fetch_generation = -1
        self._generation = 0
        self._listeners: List[ViewListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def order_id(self) -> Optional[str]:
        return self._order_id

    @property
    def status(self) -> Optional[CanonicalStatus]:
        return self._status

    @property
    def view(self) -> Optional[TrackingView]:
        return self._view

    @property
    def feed(self) -> Optional[PositionFeed]:
        return self._feed

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ───────────────────────── operações ─────────────────────────

    async def submit(self, order_id: Optional[str], delivery_id: Optional[str] = None) -> Optional[TrackingView]:
        """Começa a rastrear `order_id`, descartando tudo do pedido anterior."""
        order_id = (order_id or "").strip()
        if not order_id:
            raise InvalidOrderIdError("Por favor ingresa un ID de pedido válido")

        self._teardown()
        self._order_id = order_id
        self._delivery_override = (delivery_id or "").strip() or None
        self._delivery_id = self._delivery_override
        self._snapshot = None
        self._status = None
        self._view = None
        self._last_error = None
        self._state = SessionState.FETCHING
        logger.info("[Tracking] Consultando pedido %s", order_id)

        view = await self._fetch()
        self._arm_refresh()
        return view

    async def refresh(self) -> Optional[TrackingView]:
        """Rebusca o snapshot; nunca dispara uma segunda busca enquanto outra está em voo."""
        self._require_order()
        return await self._fetch()

    async def cancel(self) -> Optional[TrackingView]:
        self._require_order()
        if not reconciler.can_cancel(self._status):
            raise ActionNotAllowedError('Solo puedes cancelar si el estado es "recibido"')
        await self.context.backend.cancel_order(self._order_id)
        return await self._fetch(force=True)

    async def confirm_delivered(self) -> Optional[TrackingView]:
        self._require_order()
        if not reconciler.can_confirm_delivery(self._status):
            raise ActionNotAllowedError("Solo puedes confirmar la entrega cuando el pedido está en camino o entregado")
        await self.context.backend.confirm_delivered(self._order_id)
        return await self._fetch(force=True)

    async def close(self) -> None:
        """Encerra a sessão: para feed e timers; a última visão continua legível."""
        self._teardown()
        if self._state is not SessionState.TERMINAL:
            self._state = SessionState.IDLE
        if self.context.owns_backend:
            await self.context.backend.close()

    # ───────────────────────── busca do snapshot ─────────────────────────

    def _require_order(self) -> None:
        if not self._order_id:
            raise InvalidOrderIdError("No hay pedido seleccionado")

    async def _fetch(self, force: bool = False) -> Optional[TrackingView]:
        task = self._fetch_task
        if task is not None and not task.done() and self._fetch_generation == self._generation:
            if not force:
                await asyncio.shield(task)
                return self._view
            try:
                await asyncio.shield(task)
            except TrackingError:
                pass

        generation = self._generation
        self._fetch_generation = generation
        self._fetch_task = asyncio.create_task(self._fetch_and_apply(self._order_id, generation))
        await asyncio.shield(self._fetch_task)
        return self._view

    async def _fetch_and_apply(self, order_id: str, generation: int) -> None:
        backend = self.context.backend
        try:
            status = await backend.fetch_order_status(order_id)
            try:
                details = await backend.fetch_order_details(order_id)
            except BackendUnavailableError as e:
                # Só a primeira consulta segue sem detalhes; depois mantemos a última visão boa
                if self._snapshot is not None or generation != self._generation:
                    raise
                logger.warning("[Tracking] No se pudo obtener detalles completos de %s: %s", order_id, e)
                details = OrderDetails()
        except (BackendUnavailableError, OrderNotFoundError) as e:
            order_refresh_total.labels(outcome="error").inc()
            if generation == self._generation:
                self._last_error = str(e)
                if self._state is SessionState.FETCHING:
                    self._state = SessionState.IDLE if self._snapshot is None else SessionState.TRACKING
                self._rebuild_view()
            raise

        if generation != self._generation:
            logger.debug("[Tracking] Snapshot descartado de sessão anterior pedido=%s", order_id)
            return

        order_refresh_total.labels(outcome="ok").inc()
        self._apply_snapshot(OrderSnapshot(status=status, details=details, fetched_at=self.context.clock()))

    def _apply_snapshot(self, snapshot: OrderSnapshot) -> None:
        details = snapshot.details
        reconciled = reconciler.reconcile(
            snapshot.raw_status,
            details.history,
            details.delivery,
            details.confirmation.confirmed,
        )
        status = reconciler.advance(self._status, reconciled)
        if status is not reconciled:
            logger.info(
                "[Tracking] Pedido %s: leitura %s ignorada, mantendo %s",
                snapshot.order_id,
                reconciled.value,
                status.value,
            )
        elif status is not self._status:
            logger.info("[Tracking] Pedido %s: status %s", snapshot.order_id, status.value)

        self._snapshot = snapshot
        self._status = status
        # Resposta sem id de entrega mantém o último id conhecido
        self._delivery_id = self._delivery_override or snapshot.delivery_id or self._delivery_id
        self._last_error = None

        if status.is_terminal:
            self._state = SessionState.TERMINAL
            self._stop_feed()
            self._cancel_refresh()
        else:
            self._state = SessionState.TRACKING
            self._ensure_feed(snapshot)
        self._rebuild_view()

    # ───────────────────────── feed de posição ─────────────────────────

    def _ensure_feed(self, snapshot: OrderSnapshot) -> None:
        destination = snapshot.details.destination
        delivery_id = self._delivery_id

        feed = self._feed
        if feed is not None and feed.delivery_id != delivery_id:
            sticky_synthetic = feed.delivery_id is None and feed.mode is FeedMode.SYNTHETIC
            if not sticky_synthetic:
                logger.info(
                    "[Tracking] Delivery trocou de %s para %s; reiniciando rota",
                    feed.delivery_id,
                    delivery_id,
                )
                self._discard_feed()
                feed = None

        if feed is not None or destination is None:
            return

        feed = self.context.feed_factory(delivery_id, self.context.backend)
        self._feed = feed
        self._feed_unsubscribe = feed.subscribe(self._make_feed_listener(feed))
        feed.start(self.context.origin, destination)

    def _make_feed_listener(self, feed: PositionFeed) -> Callable[[FeedUpdate], None]:
        def _on_update(update: FeedUpdate) -> None:
            # Snapshot de um feed já descartado não toca a visão atual
            if feed is not self._feed:
                return
            self._rebuild_view()

        return _on_update

    def _stop_feed(self) -> None:
        """Para o feed mantendo a rota atual visível."""
        if self._feed is not None:
            self._feed.stop()

    def _discard_feed(self) -> None:
        if self._feed_unsubscribe is not None:
            self._feed_unsubscribe()
            self._feed_unsubscribe = None
        if self._feed is not None:
            self._feed.stop()
        self._feed = None

    # ───────────────────────── timers ─────────────────────────

    def _arm_refresh(self) -> None:
        if self.context.order_refresh_seconds <= 0 or self._state is not SessionState.TRACKING:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(self._generation))

    async def _refresh_loop(self, generation: int) -> None:
        while generation == self._generation and self._state is SessionState.TRACKING:
            await asyncio.sleep(self.context.order_refresh_seconds)
            if generation != self._generation or self._state is not SessionState.TRACKING:
                return
            try:
                await self._fetch()
            except TrackingError as e:
                logger.warning("[Tracking] Falha ao atualizar pedido %s: %s", self._order_id, e)

    def _cancel_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _teardown(self) -> None:
        """Síncrono: nenhum callback da sessão anterior sobrevive ao retorno."""
        self._generation += 1
        self._cancel_refresh()
        self._discard_feed()

    # ───────────────────────── visão ─────────────────────────

    def _rebuild_view(self) -> None:
        snapshot = self._snapshot
        if snapshot is None or self._status is None:
            return

        details = snapshot.details
        track = self._feed.track if self._feed is not None else ()
        last_point = track[-1] if track else None
        try:
            distance, eta = distance_and_eta(last_point, details.destination, self.context.speed_kmh)
        except ValueError as e:
            logger.warning("[Tracking] Coordenadas inválidas ao calcular ETA: %s", e)
            distance, eta = None, None

        total = snapshot.total
        view = TrackingView(
            order_id=snapshot.order_id,
            session_state=self._state,
            canonical_status=self._status,
            status_label=reconciler.label(self._status),
            progress_step=reconciler.progress(self._status),
            raw_status=snapshot.raw_status,
            history=details.history,
            delivery=details.delivery,
            delivery_id=self._delivery_id,
            customer_confirmed=details.confirmation.confirmed,
            total=total,
            total_label="Pagado" if total == 0 else format_price(total),
            paid=total == 0,
            items=details.items,
            destination=details.destination,
            track=track,
            last_point=last_point,
            feed_mode=self._feed.mode.value if self._feed is not None else FeedMode.IDLE.value,
            arrived=self._feed.arrived if self._feed is not None else False,
            distance_meters=distance,
            eta_seconds=eta,
            distance_label=format_distance(distance),
            eta_label=format_duration(eta),
            can_cancel=reconciler.can_cancel(self._status),
            can_confirm_delivery=reconciler.can_confirm_delivery(self._status),
            last_error=self._last_error,
            updated_at=self.context.clock(),
        )
        self._view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:  # noqa: BLE001
                logger.error("[Tracking] Erro em assinante da visão: %s", e, exc_info=True)
