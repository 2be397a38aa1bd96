"""Shared number generation utility.

Format tokens:
  {seq:N}      → zero-padded sequence number, N digits

Default formats:
  job_card:  JC-{seq:6}
  invoice:   INV-{seq:6}

Numbers are never reused: job cards and invoices are archived, not
deleted, so the count of existing codes under a prefix is the last
sequence issued.  Two concurrent creates can compute the same number;
the unique index on the code column turns the loser into a 409.
"""

import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.invoice import Invoice
from jobflow.models.job_card import JobCard

DEFAULT_FORMATS = {
    "job_card": "JC-{seq:6}",
    "invoice": "INV-{seq:6}",
}

# Map entity types to their code column for counting
ENTITY_COLUMN_MAP = {
    "job_card": JobCard.number,
    "invoice": Invoice.number,
}


def _build_prefix(fmt: str) -> str:
    """Return the static part of the format before {seq:N}."""
    return re.sub(r"\{seq:\d+\}.*$", "", fmt)


async def _count_existing(db: AsyncSession, entity: str, prefix: str) -> int:
    """Count existing codes with the given prefix."""
    column = ENTITY_COLUMN_MAP[entity]
    result = await db.execute(
        select(func.count()).where(column.like(f"{prefix}%"))
    )
    return result.scalar() or 0


async def generate_number(db: AsyncSession, entity: str) -> str:
    """Generate the next sequential code for ``entity``.

    Args:
        db: Database session
        entity: One of "job_card", "invoice"

    Returns:
        Generated code string, e.g. "JC-000042"
    """
    fmt = DEFAULT_FORMATS[entity]
    prefix = _build_prefix(fmt)

    count = await _count_existing(db, entity, prefix)
    seq_num = count + 1

    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 6

    return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", fmt)
