"""Inventory item routes — company-wide fabric stock (read-only).

Items are written only by the ledger operations on receipts; these
endpoints expose the resulting stock and its movement history.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.auth.deps import require_permission
from app.database import get_db
from app.middleware.exceptions import NotFoundError
from app.models.inventory_item import InventoryItem, InventoryMovement
from app.schemas.common import PaginatedResponse
from app.schemas.inventory import InventoryItemOut, InventoryMovementOut

router = APIRouter()


async def _get_item(db: AsyncSession, company_id: str, item_id: str) -> InventoryItem:
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.company_id == company_id,
        )
    )
    item = result.scalar_one_or_none()
    if not item:
        raise NotFoundError("Inventory item", item_id)
    return item


@router.get("/items", response_model=PaginatedResponse[InventoryItemOut])
async def list_items(
    item_kind: str | None = Query(None),
    fabric_type: str | None = Query(None),
    color: str | None = Query(None),
    unit: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    filters = [InventoryItem.company_id == actor.company_id]
    if item_kind:
        filters.append(InventoryItem.item_kind == item_kind)
    if fabric_type:
        filters.append(func.lower(InventoryItem.fabric_type) == fabric_type.lower())
    if color:
        filters.append(func.lower(InventoryItem.color) == color.lower())
    if unit:
        filters.append(InventoryItem.unit == unit)

    total = await db.scalar(select(func.count(InventoryItem.id)).where(*filters)) or 0
    result = await db.execute(
        select(InventoryItem)
        .where(*filters)
        .order_by(InventoryItem.item_code)
        .limit(limit)
        .offset(offset)
    )
    return PaginatedResponse(
        items=[InventoryItemOut.model_validate(i) for i in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/items/{item_id}", response_model=InventoryItemOut)
async def get_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await _get_item(db, actor.company_id, item_id)


@router.get("/items/{item_id}/movements", response_model=list[InventoryMovementOut])
async def list_movements(
    item_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    item = await _get_item(db, actor.company_id, item_id)
    result = await db.execute(
        select(InventoryMovement)
        .where(InventoryMovement.item_id == item.id)
        .order_by(InventoryMovement.recorded_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return result.scalars().all()
