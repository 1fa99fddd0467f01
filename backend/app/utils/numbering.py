"""GRN number generation.

Reads the format template from company_config and generates sequential
codes.

Format tokens:
  {date}       → YYYYMMDD
  {seq:N}      → zero-padded sequence number, N digits, resets daily per prefix

Default format:
  receipt:   GRN-{date}-{seq:3}
"""

import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.company_config import CompanyConfig
from app.models.receipt import Receipt

DEFAULT_FORMATS = {
    "receipt": "GRN-{date}-{seq:3}",
}

FORMATS_CONFIG_KEY = "number_formats"


async def _get_format(db: AsyncSession, company_id: str, entity: str) -> str:
    """Get the format template for an entity type from company_config."""
    result = await db.execute(
        select(CompanyConfig).where(
            CompanyConfig.company_id == company_id,
            CompanyConfig.key == FORMATS_CONFIG_KEY,
        )
    )
    config = result.scalar_one_or_none()
    if config and config.value and entity in config.value:
        return config.value[entity]
    return DEFAULT_FORMATS[entity]


def _build_prefix(fmt: str, today_str: str) -> str:
    """Everything before {seq:N}, used to count existing codes."""
    prefix = fmt.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


async def generate_grn_number(
    db: AsyncSession,
    company_id: str,
    on_date: date | None = None,
) -> str:
    """Generate the next GRN number for a company, e.g. "GRN-20260219-001".

    Soft-deleted receipts still hold their number, so they are counted.
    """
    fmt = await _get_format(db, company_id, "receipt")
    today_str = (on_date or date.today()).strftime("%Y%m%d")
    prefix = _build_prefix(fmt, today_str)

    result = await db.execute(
        select(func.count(Receipt.id)).where(
            Receipt.company_id == company_id,
            Receipt.grn_number.like(f"{prefix}%"),
        )
    )
    seq_num = (result.scalar() or 0) + 1

    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 3

    code = fmt.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)
