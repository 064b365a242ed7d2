from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.api.localizacao.models.coordenadas import TrackPoint
from app.api.pedidos.contracts.pedidos_backend_contract import IPedidosBackend
from app.api.pedidos.schemas.schema_pedido_tracking import OrderDetails, OrderStatusSnapshot
from app.api.shared.exceptions import BackendUnavailableError, OrderNotFoundError
from app.config import settings
from app.utils.logger import logger


def parse_track_response(data: Any) -> List[TrackPoint]:
    """
    Normaliza a resposta de `/delivery/{id}/track`.

    O backend pode devolver uma lista de pontos, só a última posição
    (`{lat, lon}`), um objeto com `points` ou nada. Pontos sem coordenadas
    válidas são descartados.
    """
    if isinstance(data, list):
        raw_points = data
    elif isinstance(data, dict):
        if isinstance(data.get("points"), list):
            raw_points = data["points"]
        elif isinstance(data.get("last_location"), dict):
            raw_points = [data["last_location"]]
        elif data.get("lat") is not None:
            raw_points = [data]
        else:
            raw_points = []
    else:
        raw_points = []

    points = (TrackPoint.parse_loose(p) for p in raw_points)
    return [p for p in points if p is not None]


class PedidosBackendAdapter(IPedidosBackend):
    """Cliente HTTP assíncrono para o backend de pedidos."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        headers = {"Accept": "application/json"}
        if user_id:
            # O backend valida o dono do pedido por este header
            headers["X-User-Id"] = str(user_id)

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.BACKEND_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, allow_empty: bool = False) -> Any:
        try:
            resp = await self._client.request(method, path)
        except httpx.HTTPError as e:
            logger.error(f"[PedidosBackend] Falha de transporte em {method} {path}: {e}")
            raise BackendUnavailableError(f"Não foi possível contatar o backend: {e}") from e

        if resp.status_code == 404 and not allow_empty:
            raise OrderNotFoundError(f"Recurso não encontrado: {path}")
        if resp.status_code == 404 or resp.status_code == 204:
            return None
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"[PedidosBackend] Erro HTTP em {method} {path}: Status {e.response.status_code}")
            raise BackendUnavailableError(
                _error_message(resp) or f"Erro {resp.status_code} no backend",
                status_code=resp.status_code,
            ) from e

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning(f"[PedidosBackend] Resposta não-JSON em {method} {path}")
            return None

    async def fetch_order_status(self, order_id: str) -> OrderStatusSnapshot:
        data = await self._request("GET", f"/orders/{quote(order_id, safe='')}/status")
        return OrderStatusSnapshot.from_dict(order_id, data)

    async def fetch_order_details(self, order_id: str) -> OrderDetails:
        data = await self._request("GET", f"/orders/{quote(order_id, safe='')}")
        return OrderDetails.from_dict(data)

    async def fetch_delivery_track(self, delivery_id: str) -> List[TrackPoint]:
        # Sem rastreamento ainda (404) não é erro
        data = await self._request("GET", f"/delivery/{quote(delivery_id, safe='')}/track", allow_empty=True)
        return parse_track_response(data)

    async def cancel_order(self, order_id: str) -> None:
        logger.info(f"[PedidosBackend] Cancelando pedido {order_id}")
        await self._request("POST", f"/orders/{quote(order_id, safe='')}/cancel")

    async def confirm_delivered(self, order_id: str) -> None:
        logger.info(f"[PedidosBackend] Cliente confirmou entrega do pedido {order_id}")
        await self._request("POST", f"/orders/{quote(order_id, safe='')}/customer-confirm-delivered")

    async def fetch_customer_orders(self, customer_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/orders/customer/{quote(customer_id, safe='')}", allow_empty=True)
        if isinstance(data, dict):
            data = data.get("items")
        if not isinstance(data, list):
            return []
        return [o for o in data if isinstance(o, dict)]


def _error_message(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message") or body.get("error")
        return str(detail) if detail else None
    return None
