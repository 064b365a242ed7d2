import os
import json
from dotenv import load_dotenv
from pathlib import Path

# Carrega o .env manualmente se estiver fora do Docker
if not os.getenv("RUNNING_IN_DOCKER"):
    dotenv_path = Path(__file__).resolve().parents[2] / ".env"
    load_dotenv(dotenv_path=dotenv_path)


def _bool_env(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# Backend de pedidos (fonte dos status, históricos e telemetria)
BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:8000")
BACKEND_TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", 10))

# Rastreamento
TRACKING_POLL_SECONDS = float(os.getenv("TRACKING_POLL_SECONDS", 10))
ORDER_REFRESH_SECONDS = float(os.getenv("ORDER_REFRESH_SECONDS", 15))  # 0 = consulta única
DEFAULT_SPEED_KMH = float(os.getenv("DEFAULT_SPEED_KMH", 25))
TERMINAL_SESSION_TTL_SECONDS = float(os.getenv("TERMINAL_SESSION_TTL_SECONDS", 60))  # pedido entregue/cancelado sai do registro

# Fallback para rota sintética quando não há telemetria real
SYNTHETIC_FALLBACK_ENABLED = _bool_env("SYNTHETIC_FALLBACK_ENABLED", "true")
SYNTHETIC_GRACE_SECONDS = float(os.getenv("SYNTHETIC_GRACE_SECONDS", 2))
SYNTHETIC_WAYPOINTS = int(os.getenv("SYNTHETIC_WAYPOINTS", 60))
SYNTHETIC_TICK_SECONDS = float(os.getenv("SYNTHETIC_TICK_SECONDS", 1.5))
SYNTHETIC_JITTER_DEGREES = float(os.getenv("SYNTHETIC_JITTER_DEGREES", 0.0003))
SYNTHETIC_MIN_EMPTY_POLLS = int(os.getenv("SYNTHETIC_MIN_EMPTY_POLLS", 1))
SYNTHETIC_ERRORS_AS_ABSENCE = _bool_env("SYNTHETIC_ERRORS_AS_ABSENCE", "false")

# Origem fixa por tenant (sede): {"barranco": [-12.1372, -77.0220], ...}
TENANT_ORIGINS = json.loads(os.getenv("TENANT_ORIGINS", '{"barranco": [-12.1372, -77.0220]}'))
DEFAULT_TENANT = os.getenv("DEFAULT_TENANT", "barranco")

# CORS
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
CORS_ALLOW_ALL = _bool_env("CORS_ALLOW_ALL", "false")

# FastAPI / App
BASE_URL = os.getenv("BASE_URL", "")
ENABLE_DOCS = _bool_env("ENABLE_DOCS", "true")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
