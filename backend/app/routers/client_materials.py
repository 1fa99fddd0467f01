"""Client material routes — consigned fabric across receipts.

Endpoints:
    GET /summary                 Ledger totals per client and unit
    GET /summary/{client_id}     Same, for one client
    GET /history/{client_id}     Every ledger entry for a client, newest first
    GET /for-return              Consignments still holding client material
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.auth.deps import require_permission
from app.config import settings
from app.database import get_db
from app.schemas.consignment import (
    ClientMaterialForReturn,
    ClientMaterialHistoryEntry,
    ClientMaterialSummary,
)
from app.services import stock_summary
from app.utils.cache import cached, company_key_builder

router = APIRouter()


@router.get("/summary", response_model=list[ClientMaterialSummary])
@cached(
    ttl=settings.stock_summary_cache_ttl,
    prefix="client_materials",
    key_builder=company_key_builder("client_materials:summary"),
)
async def client_material_summary(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await stock_summary.get_client_material_summary(db, actor.company_id)


@router.get("/summary/{client_id}", response_model=list[ClientMaterialSummary])
@cached(
    ttl=settings.stock_summary_cache_ttl,
    prefix="client_materials",
    key_builder=company_key_builder("client_materials:summary"),
)
async def client_material_summary_for_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await stock_summary.get_client_material_summary(db, actor.company_id, client_id)


@router.get("/history/{client_id}", response_model=list[ClientMaterialHistoryEntry])
async def client_material_history(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await stock_summary.get_client_material_history(db, actor.company_id, client_id)


@router.get("/for-return", response_model=list[ClientMaterialForReturn])
async def client_materials_for_return(
    client_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await stock_summary.get_client_materials_for_return(db, actor.company_id, client_id)
