from decimal import Decimal

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.pedidos.schemas.schema_pedido_tracking import (
    CustomerConfirmation,
    OrderDetails,
    OrderStatusSnapshot,
    parse_amount,
    parse_history,
)


def test_parse_amount_rejects_negative_and_garbage():
    assert parse_amount("12.50") == Decimal("12.50")
    assert parse_amount(0) == Decimal("0")
    assert parse_amount(-1) is None
    assert parse_amount("abc") is None
    assert parse_amount(True) is None
    assert parse_amount(None) is None


def test_parse_history_drops_malformed_items():
    history = parse_history([{"step": "aceptado", "by": "cocina", "at": "2024-05-01T12:00:00Z"}, "x", None])
    assert len(history) == 1
    assert history[0].step == "aceptado"
    assert history[0].at.year == 2024
    assert parse_history("nope") == ()


def test_status_snapshot_reads_delivery_id_from_nested_delivery():
    snap = OrderStatusSnapshot.from_dict("P1", {"estado": "en_camino", "delivery": {"id": 77}})
    assert snap.order_id == "P1"
    assert snap.raw_status == "en_camino"
    assert snap.delivery_id == "77"


def test_status_snapshot_tolerates_non_dict():
    snap = OrderStatusSnapshot.from_dict("P1", None)
    assert snap.raw_status == ""
    assert snap.delivery_id is None


def test_customer_confirmation_sources():
    assert CustomerConfirmation.from_details({"customer_confirmed": True}).confirmed
    assert CustomerConfirmation.from_details({"customer_confirmation": {"confirmed": "true"}}).confirmed
    assert CustomerConfirmation.from_details({"workflow": {"customer_confirmed_at": "2024-05-01T12:00:00"}}).confirmed
    assert not CustomerConfirmation.from_details({}).confirmed


def test_order_details_parses_workflow_delivery_and_destination():
    details = OrderDetails.from_dict({
        "status": "en_preparacion",
        "total": "30",
        "workflow": {"delivery": {"status": "asignado", "id_delivery": "D-1", "start_time": "2024-05-01T12:00:00"}},
        "delivery_address": {"latitude": -12.05, "longitude": -77.04},
        "items": [{"nombre": "Ceviche", "cantidad": 2, "precio": "18.00"}, "bad"],
    })
    assert details.raw_status == "en_preparacion"
    assert details.delivery.status == "asignado"
    assert details.delivery.delivery_id == "D-1"
    assert details.destination == TrackPoint(lat=-12.05, lng=-77.04)
    assert details.total == Decimal("30")
    assert len(details.items) == 1
    assert details.items[0].quantity == 2


def test_order_details_from_garbage_is_empty():
    details = OrderDetails.from_dict("garbage")
    assert details.history == ()
    assert details.delivery is None
    assert details.destination is None
    assert not details.confirmation.confirmed


def test_delivery_substate_does_not_guess_the_rider():
    delivery = OrderDetails.from_dict({"workflow": {"delivery": {"status": "en camino", "id_delivery": "D-9"}}}).delivery
    assert delivery.delivery_id == "D-9"
    assert delivery.assigned_to is None

    delivery = OrderDetails.from_dict({"delivery": {"status": "asignado", "assigned_to": "rider-3"}}).delivery
    assert delivery.assigned_to == "rider-3"
