from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.pedidos.schemas.schema_pedido_tracking import DeliverySubstate, HistoryEvent, OrderItem
from app.api.pedidos.schemas.schema_status import CanonicalStatus


class SessionState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    TRACKING = "tracking"
    TERMINAL = "terminal"


class TrackingView(BaseModel):
    """
    Visão única e somente leitura de um pedido rastreado.

    Reconstruída por inteiro a cada atualização (pedido ou posição).
    """
    model_config = ConfigDict(frozen=True)

    order_id: str
    session_state: SessionState
    canonical_status: CanonicalStatus
    status_label: str
    progress_step: Optional[int] = None
    raw_status: str = ""
    history: Tuple[HistoryEvent, ...] = ()
    delivery: Optional[DeliverySubstate] = None
    delivery_id: Optional[str] = None
    customer_confirmed: bool = False
    total: Decimal = Decimal("0")
    total_label: str = ""
    paid: bool = False
    items: Tuple[OrderItem, ...] = ()
    destination: Optional[TrackPoint] = None
    track: Tuple[TrackPoint, ...] = ()
    last_point: Optional[TrackPoint] = None
    feed_mode: str = "idle"
    arrived: bool = False
    distance_meters: Optional[float] = None
    eta_seconds: Optional[float] = None
    distance_label: str = "—"
    eta_label: str = "—"
    can_cancel: bool = False
    can_confirm_delivery: bool = False
    last_error: Optional[str] = None
    updated_at: datetime


class ActiveOrderOut(BaseModel):
    """Item da lista de pedidos ativos do cliente."""
    model_config = ConfigDict(frozen=True)

    order_id: str
    canonical_status: CanonicalStatus
    status_label: str
    total: Decimal = Decimal("0")
    total_label: str = ""
    paid: bool = False
    cancelled: bool = False


class ActiveOrdersResponse(BaseModel):
    customer_id: str
    total: int
    pedidos: List[ActiveOrderOut]
