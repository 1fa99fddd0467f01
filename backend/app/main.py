import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import client_materials, health, inventory, receipts, reconciliation
from app.utils.cache import close_redis

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: release the Redis pool on shutdown."""
    logger.info(f"GreyLedger starting ({settings.environment})")
    try:
        yield
    finally:
        await close_redis()
        logger.info("GreyLedger stopped")


app = FastAPI(
    title="GreyLedger",
    description="Grey fabric receipt, lot and client-material ledger",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(receipts.router, prefix="/api/receipts", tags=["receipts"])
app.include_router(client_materials.router, prefix="/api/client-materials", tags=["client-materials"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["inventory"])
app.include_router(reconciliation.router, prefix="/api/reconciliation", tags=["reconciliation"])
