"""
Router para monitoramento (métricas Prometheus e sessões de rastreamento abertas).
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.tracking.services.dependencies import get_tracking_registry
from app.api.tracking.services.session_registry import TrackingSessionRegistry
from app.utils.prometheus_metrics import get_metrics, CONTENT_TYPE_LATEST

# Router público (sem autenticação)
router_public = APIRouter(
    prefix="/api/monitoring",
    tags=["Monitoring - Monitoramento"]
)


@router_public.get("/metrics")
async def metrics():
    """
    Métricas Prometheus (HTTP, telemetria, rota sintética e sessões).
    Acesse em: /api/monitoring/metrics
    """
    return StreamingResponse(
        iter([get_metrics()]),
        media_type=CONTENT_TYPE_LATEST
    )


@router_public.get("/tracking")
async def sessoes_rastreamento(
    registry: TrackingSessionRegistry = Depends(get_tracking_registry),
):
    """Resumo das sessões de rastreamento abertas: estado, status e modo do feed."""
    sessoes = registry.summary()
    return {"total": len(sessoes), "sessoes": sessoes}
