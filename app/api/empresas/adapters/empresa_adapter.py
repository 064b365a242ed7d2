from typing import Any, Dict, Optional

from app.api.empresas.contracts.empresa_contract import IEmpresaContract
from app.api.localizacao.models.coordenadas import TrackPoint
from app.config import settings
from app.utils.logger import logger


class EmpresaConfigAdapter(IEmpresaContract):
    """Implementação do contrato de empresas baseada na configuração (TENANT_ORIGINS)."""

    def __init__(self, origens: Optional[Dict[str, Any]] = None, tenant_padrao: Optional[str] = None):
        self.origens = origens if origens is not None else settings.TENANT_ORIGINS
        self.tenant_padrao = tenant_padrao or settings.DEFAULT_TENANT

    def obter_coordenadas_empresa(self, empresa_id: Optional[str] = None) -> Optional[TrackPoint]:
        chave = str(empresa_id or self.tenant_padrao)
        coords = self.origens.get(chave)
        if coords is None:
            logger.warning(f"[Empresas] Sede sem coordenadas configuradas: {chave}")
            return None

        if isinstance(coords, dict):
            ponto = TrackPoint.parse_loose(coords)
        elif isinstance(coords, (list, tuple)):
            ponto = TrackPoint.from_tuple(tuple(coords))
        else:
            ponto = None

        if ponto is None:
            logger.warning(f"[Empresas] Coordenadas inválidas para a sede {chave}: {coords}")
        return ponto
