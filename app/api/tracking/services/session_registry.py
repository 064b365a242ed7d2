from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from app.api.empresas.contracts.empresa_contract import IEmpresaContract
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.tracking.schemas.schema_tracking_view import SessionState, TrackingView
from app.api.tracking.services.tracking_session import OrderTrackingSession, TrackingContext
from app.config import settings
from app.utils.logger import logger
from app.utils.prometheus_metrics import active_tracking_sessions

BackendFactory = Callable[[Optional[str]], IPedidosBackend]
SessionKey = Tuple[str, str]


def _key(order_id: Optional[str], user_id: Optional[str]) -> SessionKey:
    return ((user_id or "").strip(), (order_id or "").strip())


class TrackingSessionRegistry:
    """
    Uma sessão de rastreamento por (cliente, pedido), com backend próprio por cliente.

    O backend carrega o `X-User-Id` do cliente, então uma sessão nunca é
    compartilhada entre clientes. Sessões que chegam a um status terminal
    saem do registro após `terminal_ttl_seconds`.
    """

    def __init__(
        self,
        *,
        backend_factory: BackendFactory,
        empresa_contract: IEmpresaContract,
        context_overrides: Optional[dict] = None,
        terminal_ttl_seconds: Optional[float] = None,
    ):
        self.backend_factory = backend_factory
        self.empresa_contract = empresa_contract
        self.context_overrides = context_overrides or {}
        self.terminal_ttl_seconds = (
            terminal_ttl_seconds if terminal_ttl_seconds is not None else settings.TERMINAL_SESSION_TTL_SECONDS
        )
        self._sessions: Dict[SessionKey, OrderTrackingSession] = {}
        self._evictions: Dict[SessionKey, asyncio.Task] = {}

    def _build_session(self, user_id: Optional[str], tenant_id: Optional[str]) -> OrderTrackingSession:
        context = TrackingContext(
            backend=self.backend_factory(user_id),
            origin=self.empresa_contract.obter_coordenadas_empresa(tenant_id),
            owns_backend=True,
            **self.context_overrides,
        )
        return OrderTrackingSession(context)

    def get(self, order_id: str, user_id: Optional[str] = None) -> Optional[OrderTrackingSession]:
        return self._sessions.get(_key(order_id, user_id))

    def __len__(self) -> int:
        return len(self._sessions)

    def summary(self) -> List[dict]:
        resumo = []
        for (_, order_id), session in self._sessions.items():
            feed = session.feed
            resumo.append({
                "order_id": order_id,
                "session_state": session.state.value,
                "canonical_status": session.status.value if session.status else None,
                "feed_mode": feed.mode.value if feed is not None else None,
                "track_points": len(feed.track) if feed is not None else 0,
            })
        return resumo

    async def track(
        self,
        order_id: str,
        *,
        delivery_id: Optional[str] = None,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> Optional[TrackingView]:
        """Abre (ou reabre) o rastreamento do pedido e devolve a primeira visão."""
        key = _key(order_id, user_id)
        session = self._sessions.get(key) if key[1] else None
        if session is None:
            session = self._build_session(user_id, tenant_id)
            if key[1]:
                self._sessions[key] = session
                session.subscribe(self._make_terminal_watcher(key, session))
                active_tracking_sessions.inc()
        try:
            return await session.submit(order_id, delivery_id=delivery_id)
        except Exception:
            if session.view is None:
                await self._drop(key, session)
            raise

    # ───────────────────────── despejo de sessões terminais ─────────────────────────

    def _make_terminal_watcher(self, key: SessionKey, session: OrderTrackingSession) -> Callable[[TrackingView], None]:
        def _on_view(view: TrackingView) -> None:
            if view.session_state is not SessionState.TERMINAL or key in self._evictions:
                return
            self._evictions[key] = asyncio.get_running_loop().create_task(self._evict_later(key, session))

        return _on_view

    async def _evict_later(self, key: SessionKey, session: OrderTrackingSession) -> None:
        try:
            await asyncio.sleep(self.terminal_ttl_seconds)
        finally:
            if self._evictions.get(key) is asyncio.current_task():
                del self._evictions[key]
        # Reaberto por um novo POST nesse meio tempo
        if session.state is not SessionState.TERMINAL:
            return
        logger.info(f"[Tracking] Sessão terminal liberada para o pedido {key[1]}")
        await self._drop(key, session)

    async def _drop(self, key: SessionKey, session: OrderTrackingSession) -> None:
        eviction = self._evictions.pop(key, None)
        if eviction is not None and eviction is not asyncio.current_task() and not eviction.done():
            eviction.cancel()
        if self._sessions.get(key) is session:
            del self._sessions[key]
            active_tracking_sessions.dec()
        await session.close()

    async def stop(self, order_id: str, user_id: Optional[str] = None) -> bool:
        key = _key(order_id, user_id)
        session = self._sessions.get(key)
        if session is None:
            return False
        await self._drop(key, session)
        logger.info(f"[Tracking] Sessão encerrada para o pedido {key[1]}")
        return True

    async def close_all(self) -> None:
        for key, session in list(self._sessions.items()):
            await self._drop(key, session)
