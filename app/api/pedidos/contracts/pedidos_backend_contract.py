"""
Contract (Interface) para o backend de pedidos consumido pelo rastreamento.
Permite trocar o adapter HTTP por um fake nos testes sem acoplamento direto.
"""
from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List

from app.api.localizacao.contracts.telemetria_contract import ITelemetrySource
from app.api.pedidos.schemas.schema_pedido_tracking import OrderDetails, OrderStatusSnapshot


class IPedidosBackend(ITelemetrySource):
    """Contrato do backend externo: leitura de pedidos, telemetria e ações do cliente."""

    @abstractmethod
    async def fetch_order_status(self, order_id: str) -> OrderStatusSnapshot:
        """Obtém o status bruto do pedido."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_order_details(self, order_id: str) -> OrderDetails:
        """Obtém histórico, entrega, confirmação do cliente, destino e itens."""
        raise NotImplementedError

    @abstractmethod
    async def cancel_order(self, order_id: str) -> None:
        """Solicita o cancelamento do pedido (ação única)."""
        raise NotImplementedError

    @abstractmethod
    async def confirm_delivered(self, order_id: str) -> None:
        """Registra a confirmação do cliente de que o pedido chegou."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_customer_orders(self, customer_id: str) -> List[Dict[str, Any]]:
        """Lista os pedidos do cliente (registros base, sem detalhes)."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
