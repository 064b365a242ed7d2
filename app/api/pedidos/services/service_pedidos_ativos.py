from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from app.api.localizacao.utils.geo import format_price
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.pedidos.schemas.schema_pedido_tracking import OrderDetails, parse_amount, parse_history
from app.api.pedidos.schemas.schema_status import CanonicalStatus
from app.api.pedidos.services import service_status_reconciler as reconciler
from app.api.shared.exceptions import InvalidOrderIdError, TrackingError
from app.api.tracking.schemas.schema_tracking_view import ActiveOrderOut
from app.utils.logger import logger


class ActiveOrdersService:
    """
    Lista os pedidos do cliente com o mesmo status exibido no rastreamento.

    Cada pedido é enriquecido com seus detalhes; se os detalhes falharem, o
    status é reconciliado a partir do registro base.
    """

    def __init__(self, backend: IPedidosBackend):
        self.backend = backend

    async def list_active(self, customer_id: Optional[str], open_only: bool = False) -> List[ActiveOrderOut]:
        customer_id = (customer_id or "").strip()
        if not customer_id:
            raise InvalidOrderIdError("Ingresa un ID de cliente o inicia sesión")

        logger.info(f"[PedidosAtivos] Buscando pedidos do cliente {customer_id}")
        bases = await self.backend.fetch_customer_orders(customer_id)
        pedidos = await asyncio.gather(*(self._enrich(base) for base in bases))
        pedidos = [p for p in pedidos if p is not None]
        if open_only:
            pedidos = [p for p in pedidos if not p.canonical_status.is_terminal]
        return pedidos

    async def _enrich(self, base: Dict[str, Any]) -> Optional[ActiveOrderOut]:
        order_id = base.get("id_order") or base.get("id")
        if not order_id:
            return None
        order_id = str(order_id)

        details: Optional[OrderDetails] = None
        try:
            details = await self.backend.fetch_order_details(order_id)
        except TrackingError as e:
            logger.warning(f"[PedidosAtivos] No se pudo enriquecer pedido {order_id}: {e}")

        raw_status = (details.raw_status if details else "") or base.get("status") or base.get("estado") or ""
        if details is not None:
            status = reconciler.reconcile(
                raw_status, details.history, details.delivery, details.confirmation.confirmed
            )
        else:
            status = reconciler.reconcile(raw_status, parse_history(base.get("history")))

        total = parse_amount(base.get("total"))
        if total is None and details is not None:
            total = details.total
        total = total if total is not None else 0
        return ActiveOrderOut(
            order_id=order_id,
            canonical_status=status,
            status_label=reconciler.label(status),
            total=total,
            total_label="Pagado" if total == 0 else format_price(total),
            paid=total == 0,
            cancelled=status is CanonicalStatus.CANCELLED,
        )
