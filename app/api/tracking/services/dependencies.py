from functools import lru_cache
from typing import Optional

from fastapi import Depends

from app.api.empresas.adapters.empresa_adapter import EmpresaConfigAdapter
from app.api.empresas.contracts.empresa_contract import IEmpresaContract
from app.api.pedidos.adapters.pedidos_backend_adapter import PedidosBackendAdapter
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.pedidos.services.service_pedidos_ativos import ActiveOrdersService
from app.api.tracking.services.session_registry import TrackingSessionRegistry


def build_pedidos_backend(user_id: Optional[str] = None) -> IPedidosBackend:
    return PedidosBackendAdapter(user_id=user_id)


@lru_cache(maxsize=1)
def _get_empresa_contract_instance() -> IEmpresaContract:
    """Cria uma instância singleton do contrato de empresas."""
    return EmpresaConfigAdapter()


def get_empresa_contract() -> IEmpresaContract:
    """Dependency para obter o contrato de empresas (singleton)."""
    return _get_empresa_contract_instance()


@lru_cache(maxsize=1)
def _get_tracking_registry_instance() -> TrackingSessionRegistry:
    """Cria uma instância singleton do registro de sessões."""
    return TrackingSessionRegistry(
        backend_factory=build_pedidos_backend,
        empresa_contract=_get_empresa_contract_instance(),
    )


def get_tracking_registry() -> TrackingSessionRegistry:
    """Dependency para obter o registro de sessões de rastreamento (singleton)."""
    return _get_tracking_registry_instance()


@lru_cache(maxsize=1)
def _get_pedidos_backend_instance() -> IPedidosBackend:
    return build_pedidos_backend()


def get_pedidos_backend() -> IPedidosBackend:
    """Dependency para o backend de pedidos compartilhado (consultas sem sessão)."""
    return _get_pedidos_backend_instance()


def get_active_orders_service(
    backend: IPedidosBackend = Depends(get_pedidos_backend),
) -> ActiveOrdersService:
    return ActiveOrdersService(backend)
