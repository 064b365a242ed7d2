from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exception_handlers import (
    validation_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from app.utils.logger import logger
from app.utils.prometheus_metrics import PrometheusMiddleware
from app.config.settings import CORS_ORIGINS, CORS_ALLOW_ALL, BASE_URL, ENABLE_DOCS

from app.api.monitoring.router import router_public as monitoring_router_public
from app.api.tracking.router.router_tracking import router as tracking_router
from app.api.tracking.services.dependencies import get_pedidos_backend, get_tracking_registry

# ──────────────────────────
# App
# ──────────────────────────
app = FastAPI(
    title="API de Rastreamento de Pedidos",
    version="1.0.0",
    description="Status reconciliado, rota do entregador e ETA para o app do cliente",
    docs_url=("/swagger" if ENABLE_DOCS else None),
    redoc_url=("/redoc" if ENABLE_DOCS else None),
    openapi_url=("/openapi.json" if ENABLE_DOCS else None),
    servers=([{"url": BASE_URL, "description": "Base URL do ambiente"}] if BASE_URL else None),
    redirect_slashes=False,
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# ───────────────────────────
# Middlewares (o último adicionado roda primeiro)
# ───────────────────────────
app.add_middleware(PrometheusMiddleware)


def _cors_config():
    # Credenciais só com origens explícitas; "*" nunca leva credenciais
    if CORS_ALLOW_ALL or not CORS_ORIGINS:
        return ["*"], False
    return CORS_ORIGINS, True


_origins, _credentials = _cors_config()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    logger.info(f"[Startup] API de rastreamento iniciada (CORS: {_origins})")


@app.on_event("shutdown")
async def shutdown():
    logger.info("[Shutdown] Encerrando sessões de rastreamento...")
    try:
        await get_tracking_registry().close_all()
        await get_pedidos_backend().close()
    except Exception as e:
        logger.error(f"[Shutdown] Erro ao encerrar sessões de rastreamento: {e}")
    logger.info("[Shutdown] API encerrada.")


@app.get("/")
async def root():
    return {"status": "ok", "message": "API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(monitoring_router_public)
app.include_router(tracking_router)
