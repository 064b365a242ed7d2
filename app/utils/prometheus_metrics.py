"""
Módulo de métricas Prometheus para monitoramento da aplicação.
"""
import re
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from time import time
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import logging

logger = logging.getLogger(__name__)

# Métricas de requisições HTTP
http_requests_total = Counter(
    'http_requests_total',
    'Total de requisições HTTP',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'Duração das requisições HTTP em segundos',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Métricas do rastreamento
telemetry_polls_total = Counter(
    'tracking_telemetry_polls_total',
    'Consultas de telemetria do entregador por resultado',
    ['outcome']  # points | empty | error
)

synthetic_fallback_total = Counter(
    'tracking_synthetic_fallback_total',
    'Vezes em que a rota sintética assumiu por falta de telemetria'
)

active_tracking_sessions = Gauge(
    'tracking_active_sessions',
    'Sessões de rastreamento abertas'
)

order_refresh_total = Counter(
    'tracking_order_refresh_total',
    'Atualizações de snapshot de pedido por resultado',
    ['outcome']  # ok | error
)

_TRACKING_ID_RE = re.compile(r'^(/api/tracking(?:/customers)?)/[^/]+')


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware para coletar métricas Prometheus das requisições HTTP."""

    async def dispatch(self, request: Request, call_next: Callable):
        # Ignora o endpoint de métricas para evitar loop
        if request.url.path.endswith("/metrics"):
            return await call_next(request)

        method = request.method
        normalized_endpoint = self._normalize_endpoint(request.url.path)
        start_time = time()

        try:
            response = await call_next(request)
        except Exception:
            http_requests_total.labels(method=method, endpoint=normalized_endpoint, status_code=500).inc()
            raise

        http_requests_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=response.status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            endpoint=normalized_endpoint
        ).observe(time() - start_time)
        return response

    def _normalize_endpoint(self, endpoint: str) -> str:
        """
        Normaliza endpoints removendo IDs para evitar alta cardinalidade.
        Ex: /api/tracking/A-123/refresh -> /api/tracking/{id}/refresh
        """
        return _TRACKING_ID_RE.sub(r'\1/{id}', endpoint)


def get_metrics():
    """Retorna as métricas no formato Prometheus."""
    return generate_latest()
