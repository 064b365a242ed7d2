from enum import Enum
from typing import Optional


class CanonicalStatus(str, Enum):
    """Status canônico do ciclo de vida do pedido, independente do texto do backend."""
    RECEIVED = "received"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def rank(self) -> Optional[int]:
        """Posição no reticulado do ciclo de vida; None para cancelado (fora do reticulado)."""
        return LIFECYCLE.index(self) if self in LIFECYCLE else None

    @property
    def is_terminal(self) -> bool:
        return self in (CanonicalStatus.DELIVERED, CanonicalStatus.CANCELLED)


# Ordem total: received < preparing < ready_for_pickup < out_for_delivery < delivered
LIFECYCLE = (
    CanonicalStatus.RECEIVED,
    CanonicalStatus.PREPARING,
    CanonicalStatus.READY_FOR_PICKUP,
    CanonicalStatus.OUT_FOR_DELIVERY,
    CanonicalStatus.DELIVERED,
)

# Rótulos exibidos ao cliente (app em espanhol)
STATUS_LABELS = {
    CanonicalStatus.RECEIVED: "recibido",
    CanonicalStatus.PREPARING: "en preparación",
    CanonicalStatus.READY_FOR_PICKUP: "listo para entrega",
    CanonicalStatus.OUT_FOR_DELIVERY: "en camino",
    CanonicalStatus.DELIVERED: "entregado",
    CanonicalStatus.CANCELLED: "cancelado",
}
