"""
Reconciliação do status do pedido.

Combina o status bruto do backend, o histórico de eventos, o sub-registro de
entrega e a confirmação do cliente em um único `CanonicalStatus`. O status só
sobe no reticulado do ciclo de vida (join monotônico); cancelado é absorvente.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from app.api.pedidos.schemas.schema_pedido_tracking import DeliverySubstate, HistoryEvent
from app.api.pedidos.schemas.schema_status import LIFECYCLE, STATUS_LABELS, CanonicalStatus

_RAW_STATUS_MAP = {
    "recibido": CanonicalStatus.RECEIVED,
    "received": CanonicalStatus.RECEIVED,
    "pendiente": CanonicalStatus.RECEIVED,
    "en_preparacion": CanonicalStatus.PREPARING,
    "en_preparación": CanonicalStatus.PREPARING,
    "preparacion": CanonicalStatus.PREPARING,
    "preparing": CanonicalStatus.PREPARING,
    "aceptado": CanonicalStatus.PREPARING,
    "accepted": CanonicalStatus.PREPARING,
    "listo_para_entrega": CanonicalStatus.READY_FOR_PICKUP,
    "listo": CanonicalStatus.READY_FOR_PICKUP,
    "ready_for_pickup": CanonicalStatus.READY_FOR_PICKUP,
    "ready": CanonicalStatus.READY_FOR_PICKUP,
    "en_camino": CanonicalStatus.OUT_FOR_DELIVERY,
    "out_for_delivery": CanonicalStatus.OUT_FOR_DELIVERY,
    "on_route": CanonicalStatus.OUT_FOR_DELIVERY,
    "onroute": CanonicalStatus.OUT_FOR_DELIVERY,
    "salida_reparto": CanonicalStatus.OUT_FOR_DELIVERY,
    "entregado": CanonicalStatus.DELIVERED,
    "delivered": CanonicalStatus.DELIVERED,
    "cancelado": CanonicalStatus.CANCELLED,
    "cancelled": CanonicalStatus.CANCELLED,
    "canceled": CanonicalStatus.CANCELLED,
}

# Marcadores do histórico, do mais avançado para o menos avançado
_HISTORY_FLOORS = (
    (("entregado", "delivered"), CanonicalStatus.DELIVERED),
    (("salida_reparto", "en_camino", "onroute"), CanonicalStatus.OUT_FOR_DELIVERY),
    (("asignado",), CanonicalStatus.READY_FOR_PICKUP),
)
_ACCEPTED_MARKERS = ("aceptado", "accepted")

_DELIVERY_ON_ROUTE = ("en camino", "on route", "onroute")
_DELIVERY_READY = ("listo para entrega", "assigned", "asignado")


def normalize_raw_status(raw_status: Any) -> CanonicalStatus:
    """Mapeia o texto livre do backend; vazio ou desconhecido vira `received`."""
    if raw_status is None:
        return CanonicalStatus.RECEIVED
    key = re.sub(r"[\s\-]+", "_", str(raw_status).strip().lower())
    if key in _RAW_STATUS_MAP:
        return _RAW_STATUS_MAP[key]
    try:
        return CanonicalStatus(key)
    except ValueError:
        return CanonicalStatus.RECEIVED


def join(a: CanonicalStatus, b: CanonicalStatus) -> CanonicalStatus:
    """Máximo no reticulado. Cancelado não participa: quem já é cancelado permanece."""
    if a is CanonicalStatus.CANCELLED or b is CanonicalStatus.CANCELLED:
        return CanonicalStatus.CANCELLED
    return a if a.rank >= b.rank else b


def _steps(history: Any) -> Iterable[str]:
    if not isinstance(history, (list, tuple)):
        return ()
    steps = []
    for event in history:
        if isinstance(event, HistoryEvent):
            steps.append(event.step.lower())
        elif isinstance(event, dict) and event.get("step") is not None:
            steps.append(str(event["step"]).lower())
    return steps


def _apply_history(current: CanonicalStatus, history: Any) -> CanonicalStatus:
    steps = list(_steps(history))
    if not steps:
        return current

    for markers, floor in _HISTORY_FLOORS:
        if any(m in step for step in steps for m in markers):
            current = join(current, floor)

    # "aceptado" só tira o pedido de recebido; nunca pula etapas
    if current is CanonicalStatus.RECEIVED and any(m in step for step in steps for m in _ACCEPTED_MARKERS):
        current = CanonicalStatus.PREPARING
    return current


def _delivery_text(delivery_substate: Any) -> str:
    if isinstance(delivery_substate, DeliverySubstate):
        status = delivery_substate.status
    elif isinstance(delivery_substate, dict):
        status = delivery_substate.get("status") or ""
    else:
        return ""
    return re.sub(r"[_\-]+", " ", str(status).lower()).strip()


def _apply_delivery(current: CanonicalStatus, delivery_substate: Any) -> CanonicalStatus:
    text = _delivery_text(delivery_substate)
    if not text or current is CanonicalStatus.CANCELLED:
        return current

    if any(m in text for m in _DELIVERY_ON_ROUTE):
        return join(current, CanonicalStatus.OUT_FOR_DELIVERY)
    if any(m in text for m in _DELIVERY_READY) and current in (CanonicalStatus.RECEIVED, CanonicalStatus.PREPARING):
        return CanonicalStatus.READY_FOR_PICKUP
    return current


def reconcile(
    raw_status: Any,
    history: Any = None,
    delivery_substate: Any = None,
    customer_confirmed: bool = False,
) -> CanonicalStatus:
    """
    Calcula o status canônico do pedido.

    Prioridade (a maior vence, nunca rebaixa):
    1. status bruto normalizado (desconhecido -> received);
    2. marcadores do histórico como pisos;
    3. status do sub-registro de entrega;
    4. confirmação do cliente força `delivered`.

    Função pura: dados ausentes ou malformados são tratados como vazios.
    """
    if customer_confirmed is True:
        return CanonicalStatus.DELIVERED

    current = normalize_raw_status(raw_status)
    if current is CanonicalStatus.CANCELLED:
        return current

    current = _apply_history(current, history)
    return _apply_delivery(current, delivery_substate)


def advance(previous: Optional[CanonicalStatus], current: CanonicalStatus) -> CanonicalStatus:
    """
    Aplica a regra de não-regressão entre duas leituras da mesma sessão.

    O único salto permitido para fora do reticulado é received -> cancelled.
    """
    if previous is None:
        return current
    if previous is CanonicalStatus.CANCELLED:
        return previous
    if current is CanonicalStatus.CANCELLED:
        return current if previous is CanonicalStatus.RECEIVED else previous
    return join(previous, current)


def can_cancel(status: Optional[CanonicalStatus]) -> bool:
    """O cliente só pode cancelar enquanto o pedido está recebido."""
    return status is CanonicalStatus.RECEIVED


def can_confirm_delivery(status: Optional[CanonicalStatus]) -> bool:
    """Confirmação do cliente faz sentido com o pedido em camino ou já entregue."""
    return status in (CanonicalStatus.OUT_FOR_DELIVERY, CanonicalStatus.DELIVERED)


def label(status: Optional[CanonicalStatus]) -> str:
    if status is None:
        return "desconocido"
    return STATUS_LABELS[status]


def progress(status: Optional[CanonicalStatus]) -> Optional[int]:
    """Índice da etapa na barra de progresso (0..4); None para cancelado."""
    if status is None or status is CanonicalStatus.CANCELLED:
        return None
    return LIFECYCLE.index(status)
