"""Script to run database migrations."""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ALEMBIC_DIR = Path(__file__).resolve().parent.parent / "alembic"


def alembic_config() -> Config:
    """Alembic configuration pointing at the bundled migration scripts."""
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    return config


def run_migrations(revision: str = "head") -> None:
    """Upgrade the scheduling tables to ``revision``."""
    try:
        print(f"Upgrading database to {revision}...")
        command.upgrade(alembic_config(), revision)
        print("✓ Migrations completed successfully!")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


def rollback(revision: str = "base") -> None:
    """Downgrade the scheduling tables to ``revision``."""
    try:
        print(f"Downgrading database to {revision}...")
        command.downgrade(alembic_config(), revision)
        print("✓ Downgrade completed successfully!")
    except Exception as e:
        print(f"✗ Downgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "downgrade":
        rollback(sys.argv[2] if len(sys.argv) > 2 else "base")
    elif len(sys.argv) > 1 and sys.argv[1] != "upgrade":
        print("Usage: python scripts/migrate.py [upgrade [<revision>] | downgrade [<revision>]]")
    else:
        run_migrations(sys.argv[2] if len(sys.argv) > 2 else "head")
