from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status

from app.api.pedidos.services.service_pedidos_ativos import ActiveOrdersService
from app.api.shared.exceptions import (
    ActionNotAllowedError,
    BackendUnavailableError,
    InvalidOrderIdError,
    OrderNotFoundError,
    TrackingError,
)
from app.api.tracking.schemas.schema_tracking_view import ActiveOrdersResponse, TrackingView
from app.api.tracking.services.dependencies import get_active_orders_service, get_tracking_registry
from app.api.tracking.services.session_registry import TrackingSessionRegistry
from app.api.tracking.services.tracking_session import OrderTrackingSession
from app.utils.logger import logger

router = APIRouter(prefix="/api/tracking", tags=["Client - Rastreamento"])


def _raise_http(e: TrackingError) -> NoReturn:
    if isinstance(e, InvalidOrderIdError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from e
    if isinstance(e, OrderNotFoundError):
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from e
    if isinstance(e, ActionNotAllowedError):
        raise HTTPException(status.HTTP_409_CONFLICT, str(e)) from e
    if isinstance(e, BackendUnavailableError):
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, str(e)) from e
    raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e)) from e


def _get_session(registry: TrackingSessionRegistry, order_id: str, user_id: Optional[str]) -> OrderTrackingSession:
    # Sessões são por cliente: outro X-User-Id não enxerga o rastreamento
    session = registry.get(order_id, user_id)
    if session is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Pedido {order_id} não está sendo rastreado")
    return session


def _view_or_404(view: Optional[TrackingView], order_id: str) -> TrackingView:
    if view is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Pedido {order_id} ainda não foi carregado")
    return view


# ======================================================================
# ======================= PEDIDOS ATIVOS ===============================
@router.get("/customers/{customer_id}/active-orders", response_model=ActiveOrdersResponse)
async def listar_pedidos_ativos(
    customer_id: str = Path(..., description="ID do cliente"),
    open_only: bool = Query(False, description="Oculta pedidos entregues e cancelados"),
    svc: ActiveOrdersService = Depends(get_active_orders_service),
):
    """Lista os pedidos do cliente com o status reconciliado (mesmo critério do rastreamento)."""
    try:
        pedidos = await svc.list_active(customer_id, open_only=open_only)
    except TrackingError as e:
        _raise_http(e)
    return ActiveOrdersResponse(customer_id=customer_id, total=len(pedidos), pedidos=pedidos)


# ======================================================================
# ======================= RASTREAMENTO =================================
@router.post("/{order_id}", response_model=TrackingView, status_code=status.HTTP_200_OK)
async def rastrear_pedido(
    order_id: str = Path(..., description="ID do pedido"),
    delivery_id: Optional[str] = Query(None, description="ID da entrega, quando já conhecido"),
    tenant_id: Optional[str] = Query(None, description="Sede de origem da entrega"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    """
    Começa (ou reinicia) o rastreamento do pedido.

    Busca status e detalhes, reconcilia o status e inicia o feed de posição
    quando há destino e o pedido ainda não foi entregue.
    """
    logger.info(f"[Tracking] Rastrear pedido {order_id} delivery={delivery_id}")
    try:
        view = await registry.track(order_id, delivery_id=delivery_id, user_id=x_user_id, tenant_id=tenant_id)
    except TrackingError as e:
        _raise_http(e)
    return _view_or_404(view, order_id)


@router.get("/{order_id}", response_model=TrackingView)
async def obter_visao(
    order_id: str = Path(..., description="ID do pedido"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    """Visão atual do pedido rastreado (status, histórico, posição e ETA)."""
    session = _get_session(registry, order_id, x_user_id)
    return _view_or_404(session.view, order_id)


@router.post("/{order_id}/refresh", response_model=TrackingView)
async def atualizar_pedido(
    order_id: str = Path(..., description="ID do pedido"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    session = _get_session(registry, order_id, x_user_id)
    try:
        view = await session.refresh()
    except TrackingError as e:
        _raise_http(e)
    return _view_or_404(view, order_id)


@router.post("/{order_id}/cancel", response_model=TrackingView)
async def cancelar_pedido(
    order_id: str = Path(..., description="ID do pedido"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    """Cancela o pedido; só permitido enquanto o status é recebido."""
    session = _get_session(registry, order_id, x_user_id)
    try:
        view = await session.cancel()
    except TrackingError as e:
        _raise_http(e)
    return _view_or_404(view, order_id)


@router.post("/{order_id}/confirm-delivered", response_model=TrackingView)
async def confirmar_entrega(
    order_id: str = Path(..., description="ID do pedido"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    """Registra que o cliente recebeu o pedido."""
    session = _get_session(registry, order_id, x_user_id)
    try:
        view = await session.confirm_delivered()
    except TrackingError as e:
        _raise_http(e)
    return _view_or_404(view, order_id)


@router.delete("/{order_id}", status_code=status.HTTP_200_OK)
async def encerrar_rastreamento(
    order_id: str = Path(..., description="ID do pedido"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    if not await registry.stop(order_id, x_user_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Pedido {order_id} não está sendo rastreado")
    return {"order_id": order_id, "stopped": True}
