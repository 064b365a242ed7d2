import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.pedidos.adapters.pedidos_backend_adapter import parse_track_response
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.pedidos.schemas.schema_pedido_tracking import OrderDetails, OrderStatusSnapshot
from app.api.shared.exceptions import OrderNotFoundError

ORIGIN = TrackPoint(lat=-12.1372, lng=-77.0220)
DESTINATION = TrackPoint(lat=-12.0464, lng=-77.0428)


def make_order(status: str = "recibido", history: Optional[List[dict]] = None, **details: Any) -> Dict[str, dict]:
    details.setdefault("destination", {"lat": DESTINATION.lat, "lng": DESTINATION.lng})
    details.setdefault("total", 25.5)
    details["history"] = history or []
    return {"status": {"status": status}, "details": details}


class FakeBackend(IPedidosBackend):
    """Backend em memória: pedidos, telemetria e erros programáveis por operação."""

    def __init__(self, orders: Optional[Dict[str, dict]] = None, tracks: Optional[Dict[str, Any]] = None):
        self.orders = orders or {}
        self.tracks = tracks or {}
        self.customer_orders: Dict[str, List[dict]] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: Dict[str, int] = defaultdict(int)
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def _raise_if_programmed(self, op: str) -> None:
        error = self.errors.get(op)
        if error is not None:
            raise error

    def _order(self, order_id: str) -> dict:
        if order_id not in self.orders:
            raise OrderNotFoundError(f"Pedido {order_id} não encontrado")
        return self.orders[order_id]

    async def fetch_order_status(self, order_id: str) -> OrderStatusSnapshot:
        self.calls["status"] += 1
        if self.gate is not None:
            await self.gate.wait()
        self._raise_if_programmed("status")
        return OrderStatusSnapshot.from_dict(order_id, copy.deepcopy(self._order(order_id)["status"]))

    async def fetch_order_details(self, order_id: str) -> OrderDetails:
        self.calls["details"] += 1
        self._raise_if_programmed("details")
        return OrderDetails.from_dict(copy.deepcopy(self._order(order_id)["details"]))

    async def fetch_delivery_track(self, delivery_id: str) -> List[TrackPoint]:
        self.calls["track"] += 1
        self._raise_if_programmed("track")
        return parse_track_response(copy.deepcopy(self.tracks.get(delivery_id)))

    async def cancel_order(self, order_id: str) -> None:
        self.calls["cancel"] += 1
        self._raise_if_programmed("cancel")
        self._order(order_id)["status"]["status"] = "cancelado"

    async def confirm_delivered(self, order_id: str) -> None:
        self.calls["confirm"] += 1
        self._raise_if_programmed("confirm")
        self._order(order_id)["details"]["customer_confirmed"] = True

    async def fetch_customer_orders(self, customer_id: str) -> List[Dict[str, Any]]:
        self.calls["customer_orders"] += 1
        self._raise_if_programmed("customer_orders")
        return copy.deepcopy(self.customer_orders.get(customer_id, []))

    async def close(self) -> None:
        self.closed = True
