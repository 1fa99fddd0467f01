"""Reconciliation router — receipt lots vs inventory items.

Endpoints:
    POST  /run                 Trigger a reconciliation run
    GET   /alerts              List alerts with filters
    GET   /alerts/{alert_id}   Single alert detail
    PATCH /alerts/{alert_id}   Update alert status (acknowledge / resolve / dismiss)

All endpoints are company-scoped.  Listing needs stock.read; running and
updating alerts need reconciliation.run.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.auth.deps import require_permission
from app.database import get_db
from app.middleware.exceptions import NotFoundError
from app.models.reconciliation_alert import ReconciliationAlert
from app.schemas.reconciliation import AlertOut, AlertUpdate, RunSummary
from app.services.reconciliation import run_reconciliation
from app.utils.activity import log_activity

router = APIRouter()


async def _get_alert(db: AsyncSession, company_id: str, alert_id: str) -> ReconciliationAlert:
    result = await db.execute(
        select(ReconciliationAlert).where(
            ReconciliationAlert.id == alert_id,
            ReconciliationAlert.company_id == company_id,
            ReconciliationAlert.is_deleted == False,  # noqa: E712
        )
    )
    alert = result.scalar_one_or_none()
    if not alert:
        raise NotFoundError("Alert", alert_id)
    return alert


# ── Trigger a reconciliation run ─────────────────────────────

@router.post("/run", response_model=RunSummary, status_code=status.HTTP_201_CREATED)
async def trigger_run(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("reconciliation.run")),
):
    """Recompute every grey fabric item from the lots and record mismatches.

    Previous open alerts that no longer appear are auto-resolved.
    """
    summary = await run_reconciliation(db, actor.company_id)
    await log_activity(
        db, actor,
        action="reconciliation_run",
        entity_type="reconciliation",
        entity_id=summary["run_id"],
        summary=f"{summary['total_alerts']} alert(s) across {summary['items_checked']} item(s)",
    )
    return RunSummary(**summary)


# ── List alerts with filters ─────────────────────────────────

@router.get("/alerts", response_model=list[AlertOut])
async def list_alerts(
    alert_type: str | None = Query(None, description="Filter by alert_type"),
    severity: str | None = Query(None, description="Filter by severity"),
    alert_status: str | None = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    stmt = select(ReconciliationAlert).where(
        ReconciliationAlert.company_id == actor.company_id,
        ReconciliationAlert.is_deleted == False,  # noqa: E712
    )

    if alert_type:
        stmt = stmt.where(ReconciliationAlert.alert_type == alert_type)
    if severity:
        stmt = stmt.where(ReconciliationAlert.severity == severity)
    if alert_status:
        stmt = stmt.where(ReconciliationAlert.status == alert_status)

    stmt = (
        stmt
        .order_by(ReconciliationAlert.created_at.desc())
        .limit(limit)
        .offset(offset)
    )

    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/alerts/{alert_id}", response_model=AlertOut)
async def get_alert(
    alert_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("stock.read")),
):
    return await _get_alert(db, actor.company_id, alert_id)


# ── Update alert status ──────────────────────────────────────

@router.patch("/alerts/{alert_id}", response_model=AlertOut)
async def update_alert(
    alert_id: str,
    body: AlertUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission("reconciliation.run")),
):
    """Acknowledge, resolve, or dismiss an alert."""
    alert = await _get_alert(db, actor.company_id, alert_id)

    alert.status = body.status
    if body.resolution_note:
        alert.resolution_note = body.resolution_note
    if body.status in ("resolved", "dismissed"):
        alert.resolved_at = datetime.utcnow()
        alert.resolved_by = actor.user_id

    await db.flush()
    return alert
