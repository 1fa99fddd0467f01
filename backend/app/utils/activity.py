"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, actor, action="lot_added", entity_type="receipt",
        entity_id=receipt.id, entity_code=receipt.grn_number,
        summary="Added lot LOT-001 (500 meters)",
    )

The row is added to the current session and committed with the
enclosing transaction — no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.actor import Actor
from app.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    actor: Actor,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        company_id=actor.company_id,
        user_id=actor.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        summary=summary,
        details=details,
    )
    db.add(entry)
