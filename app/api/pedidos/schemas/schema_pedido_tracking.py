"""
Schemas do snapshot de pedido consumido pelo rastreamento.

O backend devolve formatos variados (campos em espanhol/inglês, históricos
incompletos, coordenadas como lat/lon ou latitude/longitude). Os `from_dict`
abaixo aceitam tudo isso e degradam para o valor menos informativo válido,
sem levantar exceção.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.api.localizacao.models.coordenadas import TrackPoint

_datetime_adapter = TypeAdapter(datetime)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return _datetime_adapter.validate_python(value)
    except ValidationError:
        return None


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "si", "sí")
    return False


class HistoryEvent(BaseModel):
    """Evento imutável do histórico do pedido."""
    model_config = ConfigDict(frozen=True)

    step: str = ""
    by: Optional[str] = None
    at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["HistoryEvent"]:
        if isinstance(data, HistoryEvent):
            return data
        if not isinstance(data, dict):
            return None
        return cls(
            step=_as_text(data.get("step") or data.get("status") or data.get("estado")) or "",
            by=_as_text(data.get("by")),
            at=parse_datetime(data.get("at")),
        )


def parse_history(value: Any) -> Tuple[HistoryEvent, ...]:
    """Histórico malformado ou ausente vira tupla vazia; itens inválidos são descartados."""
    if not isinstance(value, (list, tuple)):
        return ()
    events = (HistoryEvent.from_dict(item) for item in value)
    return tuple(e for e in events if e is not None)


class DeliverySubstate(BaseModel):
    """Sub-registro de entrega aninhado nos detalhes do pedido."""
    model_config = ConfigDict(frozen=True)

    status: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    assigned_to: Optional[str] = None
    delivery_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["DeliverySubstate"]:
        if isinstance(data, DeliverySubstate):
            return data
        if not isinstance(data, dict) or not data:
            return None
        return cls(
            status=_as_text(data.get("status") or data.get("estado")) or "",
            start_time=parse_datetime(data.get("start_time") or data.get("assigned_at") or data.get("startTime")),
            end_time=parse_datetime(data.get("end_time") or data.get("endTime")),
            assigned_to=_as_text(data.get("assigned_to")),
            delivery_id=_as_text(data.get("id_delivery") or data.get("id")),
        )


class CustomerConfirmation(BaseModel):
    """Confirmação explícita do cliente de que o pedido chegou."""
    model_config = ConfigDict(frozen=True)

    confirmed: bool = False
    at: Optional[datetime] = None

    @classmethod
    def from_details(cls, data: Dict[str, Any]) -> "CustomerConfirmation":
        workflow = _as_dict(data.get("workflow"))
        nested = _as_dict(data.get("customer_confirmation"))

        at = parse_datetime(
            nested.get("at")
            or data.get("customer_confirmed_at")
            or workflow.get("customer_confirmed_at")
        )
        confirmed = (
            _as_flag(nested.get("confirmed"))
            or _as_flag(data.get("customer_confirmed"))
            or _as_flag(workflow.get("customer_confirmed"))
            or at is not None
        )
        return cls(confirmed=confirmed, at=at)


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    quantity: int = 1
    price: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["OrderItem"]:
        if not isinstance(data, dict):
            return None
        try:
            quantity = int(data.get("cantidad") or data.get("qty") or data.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1
        return cls(
            name=_as_text(data.get("nombre") or data.get("name")) or "",
            quantity=max(quantity, 1),
            price=parse_amount(data.get("precio") if data.get("precio") is not None else data.get("price")),
        )


def parse_destination(data: Dict[str, Any]) -> Optional[TrackPoint]:
    """Procura coordenadas de destino nos formatos conhecidos do backend."""
    for key in ("destination", "delivery_address", "address", "direccion"):
        point = TrackPoint.parse_loose(data.get(key))
        if point is not None:
            return point
    return TrackPoint.parse_loose(data)


class OrderStatusSnapshot(BaseModel):
    """Resposta de `GET /orders/{id}/status`."""
    model_config = ConfigDict(frozen=True)

    order_id: str
    raw_status: str = ""
    delivery_id: Optional[str] = None
    total: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, order_id: str, data: Any) -> "OrderStatusSnapshot":
        data = _as_dict(data)
        delivery = _as_dict(data.get("delivery"))
        return cls(
            order_id=_as_text(data.get("id_order") or data.get("order_id") or data.get("id")) or order_id,
            raw_status=_as_text(data.get("status") or data.get("estado")) or "",
            delivery_id=_as_text(
                data.get("id_delivery")
                or data.get("delivery_id")
                or delivery.get("id_delivery")
                or delivery.get("id")
            ),
            total=parse_amount(data.get("total")),
        )


class OrderDetails(BaseModel):
    """Resposta de `GET /orders/{id}`."""
    model_config = ConfigDict(frozen=True)

    raw_status: str = ""
    history: Tuple[HistoryEvent, ...] = ()
    delivery: Optional[DeliverySubstate] = None
    confirmation: CustomerConfirmation = Field(default_factory=CustomerConfirmation)
    destination: Optional[TrackPoint] = None
    total: Optional[Decimal] = None
    items: Tuple[OrderItem, ...] = ()
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Any) -> "OrderDetails":
        data = _as_dict(data)
        workflow = _as_dict(data.get("workflow"))
        items = data.get("items") if isinstance(data.get("items"), list) else []
        return cls(
            raw_status=_as_text(data.get("status") or data.get("estado")) or "",
            history=parse_history(data.get("history")),
            delivery=DeliverySubstate.from_dict(workflow.get("delivery") or data.get("delivery")),
            confirmation=CustomerConfirmation.from_details(data),
            destination=parse_destination(data),
            total=parse_amount(data.get("total")),
            items=tuple(i for i in (OrderItem.from_dict(item) for item in items) if i is not None),
            created_at=parse_datetime(data.get("created_at") or data.get("createdAt")),
        )


class OrderSnapshot(BaseModel):
    """Status + detalhes buscados no mesmo ciclo; a reconciliação sempre usa um snapshot completo."""
    model_config = ConfigDict(frozen=True)

    status: OrderStatusSnapshot
    details: OrderDetails
    fetched_at: datetime

    @property
    def order_id(self) -> str:
        return self.status.order_id

    @property
    def raw_status(self) -> str:
        return self.status.raw_status or self.details.raw_status

    @property
    def total(self) -> Decimal:
        if self.status.total is not None:
            return self.status.total
        return self.details.total if self.details.total is not None else Decimal("0")

    @property
    def delivery_id(self) -> Optional[str]:
        if self.status.delivery_id:
            return self.status.delivery_id
        return self.details.delivery.delivery_id if self.details.delivery else None
