import pytest

from app.api.pedidos.schemas.schema_pedido_tracking import DeliverySubstate, HistoryEvent
from app.api.pedidos.schemas.schema_status import LIFECYCLE, CanonicalStatus
from app.api.pedidos.services.service_status_reconciler import (
    advance,
    can_cancel,
    can_confirm_delivery,
    join,
    label,
    normalize_raw_status,
    progress,
    reconcile,
)


def _history(*steps):
    return [HistoryEvent(step=s) for s in steps]


@pytest.mark.parametrize("raw, expected", [
    ("recibido", CanonicalStatus.RECEIVED),
    ("EN_PREPARACION", CanonicalStatus.PREPARING),
    ("listo para entrega", CanonicalStatus.READY_FOR_PICKUP),
    ("en-camino", CanonicalStatus.OUT_FOR_DELIVERY),
    ("Entregado", CanonicalStatus.DELIVERED),
    ("cancelado", CanonicalStatus.CANCELLED),
    ("out_for_delivery", CanonicalStatus.OUT_FOR_DELIVERY),
    ("", CanonicalStatus.RECEIVED),
    (None, CanonicalStatus.RECEIVED),
    ("estado_raro", CanonicalStatus.RECEIVED),
])
def test_normalize_raw_status(raw, expected):
    assert normalize_raw_status(raw) is expected


def test_accepted_moves_received_to_preparing():
    assert reconcile("recibido", _history("aceptado")) is CanonicalStatus.PREPARING


def test_history_floors_raise_through_stages():
    history = _history("aceptado", "asignado", "salida_reparto")
    assert reconcile("recibido", history) is CanonicalStatus.OUT_FOR_DELIVERY


def test_history_markers_are_case_insensitive_substrings():
    assert reconcile("recibido", _history("Pedido ENTREGADO al cliente")) is CanonicalStatus.DELIVERED
    assert reconcile("", _history("repartidor onroute")) is CanonicalStatus.OUT_FOR_DELIVERY


def test_history_never_lowers_advanced_raw_status():
    assert reconcile("en_camino", _history("aceptado")) is CanonicalStatus.OUT_FOR_DELIVERY
    assert reconcile("entregado", _history("asignado")) is CanonicalStatus.DELIVERED


def test_accepted_does_not_jump_past_preparing():
    assert reconcile("recibido", _history("accepted", "accepted")) is CanonicalStatus.PREPARING


def test_delivery_on_route_raises_to_out_for_delivery():
    delivery = DeliverySubstate(status="en camino")
    assert reconcile("en_preparacion", [], delivery) is CanonicalStatus.OUT_FOR_DELIVERY
    assert reconcile("recibido", [], {"status": "ON_ROUTE"}) is CanonicalStatus.OUT_FOR_DELIVERY


def test_delivery_ready_only_raises_early_statuses():
    ready = DeliverySubstate(status="listo_para_entrega")
    assert reconcile("recibido", [], ready) is CanonicalStatus.READY_FOR_PICKUP
    assert reconcile("en_preparacion", [], {"status": "assigned"}) is CanonicalStatus.READY_FOR_PICKUP
    assert reconcile("en_camino", [], ready) is CanonicalStatus.OUT_FOR_DELIVERY


@pytest.mark.parametrize("raw", ["recibido", "cancelado", "", "en_camino", "xyz"])
@pytest.mark.parametrize("steps", [(), ("aceptado",), ("cancelado",), ("asignado", "salida_reparto")])
def test_customer_confirmation_forces_delivered(raw, steps):
    assert reconcile(raw, _history(*steps), None, True) is CanonicalStatus.DELIVERED


def test_malformed_inputs_fall_back_to_raw_status():
    assert reconcile("en_preparacion", "not-a-list", 42) is CanonicalStatus.PREPARING
    assert reconcile(None, [None, 3, {"by": "x"}], "x") is CanonicalStatus.RECEIVED
    assert reconcile("recibido", [{"step": "aceptado"}]) is CanonicalStatus.PREPARING


def test_cancelled_is_absorbing():
    assert reconcile("cancelado", _history("aceptado", "salida_reparto")) is CanonicalStatus.CANCELLED


def test_reconcile_is_monotone_over_accumulating_history():
    steps = ["creado", "aceptado", "asignado", "nota", "salida_reparto", "entregado"]
    previous = None
    for n in range(len(steps) + 1):
        current = reconcile("recibido", _history(*steps[:n]), None, False)
        if previous is not None:
            assert current.rank >= previous.rank
        previous = current
    assert previous is CanonicalStatus.DELIVERED


def test_join_is_lattice_max():
    for a in LIFECYCLE:
        for b in LIFECYCLE:
            assert join(a, b).rank == max(a.rank, b.rank)


def test_advance_never_regresses_except_received_to_cancelled():
    assert advance(CanonicalStatus.OUT_FOR_DELIVERY, CanonicalStatus.RECEIVED) is CanonicalStatus.OUT_FOR_DELIVERY
    assert advance(CanonicalStatus.RECEIVED, CanonicalStatus.CANCELLED) is CanonicalStatus.CANCELLED
    assert advance(CanonicalStatus.PREPARING, CanonicalStatus.CANCELLED) is CanonicalStatus.PREPARING
    assert advance(CanonicalStatus.CANCELLED, CanonicalStatus.DELIVERED) is CanonicalStatus.CANCELLED
    assert advance(None, CanonicalStatus.READY_FOR_PICKUP) is CanonicalStatus.READY_FOR_PICKUP


def test_customer_actions_and_labels():
    assert can_cancel(CanonicalStatus.RECEIVED)
    assert not can_cancel(CanonicalStatus.PREPARING)
    assert can_confirm_delivery(CanonicalStatus.DELIVERED)
    assert not can_confirm_delivery(CanonicalStatus.RECEIVED)
    assert label(CanonicalStatus.OUT_FOR_DELIVERY) == "en camino"
    assert progress(CanonicalStatus.DELIVERED) == 4
    assert progress(CanonicalStatus.CANCELLED) is None
