import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import app.models  # noqa: F401  models registrados antes do create_all
import app.services.event_handlers  # noqa: F401  assina os eventos de pedido/estoque
from app.core.config import CORS_ORIGINS, DATABASE_URL, ENV_NORMALIZED
from app.core.database import Base, engine
from app.core.error_handlers import register_exception_handlers
from app.core.logging_setup import configure_logging
from app.core.startup_checks import apply_migrations, ensure_migrations_applied, validate_database_environment
from app.middleware.merchant_context import MerchantContextMiddleware
from app.middleware.observability import ObservabilityMiddleware
from app.routers.internal_metrics import router as internal_metrics_router
from app.routers.pos_orders import router as pos_orders_router
from app.routers.public_orders import router as public_orders_router

configure_logging()

logger = logging.getLogger(__name__)
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(Path(__file__).resolve().parents[1] / "alembic.ini")))


def _startup_tasks() -> None:
    validate_database_environment()
    if DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    else:
        apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH)
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    logger.info("[STARTUP] ready env=%s", ENV_NORMALIZED)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        _startup_tasks()
    except Exception:
        logger.exception("[STARTUP] failed")
        raise
    yield


def create_app() -> FastAPI:
    application = FastAPI(title="Ordering Core API", version="0.1.0", lifespan=lifespan)

    # ordem de execução: contexto do merchant -> observabilidade -> CORS -> rotas
    application.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(ObservabilityMiddleware)
    application.add_middleware(MerchantContextMiddleware)

    register_exception_handlers(application)

    application.include_router(pos_orders_router)
    application.include_router(public_orders_router)
    application.include_router(internal_metrics_router)

    @application.get("/health")
    def health():
        return {"status": "healthy"}

    return application


app = create_app()
