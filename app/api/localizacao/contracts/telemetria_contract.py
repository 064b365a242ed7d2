from abc import ABC, abstractmethod
from typing import List

from app.api.localizacao.models.coordenadas import TrackPoint


class ITelemetrySource(ABC):
    """Interface para fontes de telemetria real do entregador."""

    @abstractmethod
    async def fetch_delivery_track(self, delivery_id: str) -> List[TrackPoint]:
        """
        Busca os pontos conhecidos da entrega.

        Args:
            delivery_id: ID da entrega (delivery) no backend

        Returns:
            Lista possivelmente vazia de pontos. Ausência de dados não é erro;
            falhas de transporte levantam BackendUnavailableError.
        """
        raise NotImplementedError
