"""Script to create the scheduling tables without running migrations."""

import asyncio

from clinic_scheduler.database import engine
from clinic_scheduler.models import metadata


async def init_db() -> None:
    """Create doctor_schedules and appointments with their indexes."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Scheduling tables created:", ", ".join(sorted(metadata.tables)))


if __name__ == "__main__":
    asyncio.run(init_db())
