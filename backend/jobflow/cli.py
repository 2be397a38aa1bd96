"""Management CLI.

Usage:
    python -m jobflow.cli create-tables    # Create all tables (dev / first boot)
    python -m jobflow.cli sweep-overdue    # Run the invoice overdue sweep now
"""

import asyncio
import sys

from sqlalchemy import create_engine

from jobflow.config import settings
from jobflow.database import Base


def create_tables():
    """Create every table on the sync URL; prefer `alembic upgrade head` in production."""
    import jobflow.models  # noqa: F401

    engine = create_engine(settings.database_url_sync)
    Base.metadata.create_all(engine)
    print(f"  Created {len(Base.metadata.tables)} tables")


def sweep_overdue():
    from jobflow.services.scheduler import run_overdue_sweep

    flipped = asyncio.run(run_overdue_sweep())
    for number in flipped:
        print(f"  {number}")
    print(f"\n{len(flipped)} invoice(s) marked overdue")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-tables":
        create_tables()
    elif cmd == "sweep-overdue":
        sweep_overdue()
    else:
        print("Usage: python -m jobflow.cli [create-tables|sweep-overdue]")
