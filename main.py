import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from api.routes import SERVICE_VERSION, router as api_router
from db.pool import database_pool
from services.config import settings
from services.schema_registry import schema_registry

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logging.basicConfig(
    format="%(message)s",
    level=getattr(logging, settings.log_level.upper()),
)

logger = structlog.get_logger()

SERVICE_NAME = "DeFi Query Runtime"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting DeFi Query Runtime", port=settings.port)
    tables = schema_registry.load()
    logger.info("Table registry loaded", tables=len(tables))
    if settings.registry_reconcile_on_startup:
        try:
            await schema_registry.reconcile_live_columns(database_pool)
        except Exception as e:
            logger.warning("Registry reconciliation skipped", error=str(e), error_type=type(e).__name__)
    yield
    await database_pool.close()
    logger.info("Shutting down DeFi Query Runtime")


app = FastAPI(
    title=SERVICE_NAME,
    description="Natural-language questions over DeFi market data, answered with guarded SQL",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "endpoints": ["/api/query", "/api/health"]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.log_level.lower() == "debug"
    )
