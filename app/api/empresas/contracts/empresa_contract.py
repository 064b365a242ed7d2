"""
Contract (Interface) para dados de empresa (tenant/sede) usados pelo rastreamento.
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.api.localizacao.models.coordenadas import TrackPoint


class IEmpresaContract(ABC):
    """Contrato para acesso às sedes sem acoplamento com a origem dos dados."""

    @abstractmethod
    def obter_coordenadas_empresa(self, empresa_id: Optional[str] = None) -> Optional[TrackPoint]:
        """Coordenadas fixas da sede; None quando o tenant não está configurado."""
        raise NotImplementedError
