#!/usr/bin/env python3
"""Database bootstrap: wait for the database, then run Alembic migrations.

Run before starting the API or the worker against the SQL store:
    python run_migrations.py && uvicorn main:app

If migrations fail, exit non-zero; never start on an unknown schema.
"""

import os
import sys
import time
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

HERE = os.path.dirname(os.path.abspath(__file__))


def alembic_config(connection=None):
    """Alembic config rooted at this directory, optionally bound to an open connection."""
    from alembic.config import Config

    cfg = Config(os.path.join(HERE, "alembic.ini"))
    # script_location in alembic.ini is relative; anchor it here
    cfg.set_main_option("script_location", os.path.join(HERE, "alembic"))
    if connection is not None:
        cfg.attributes["connection"] = connection
    return cfg


def alembic_upgrade_head(connection=None) -> None:
    """Apply all pending migrations."""
    from alembic import command

    command.upgrade(alembic_config(connection), "head")


def current_revision() -> Optional[str]:
    from alembic.runtime.migration import MigrationContext
    from core.database import engine

    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def main(max_retries: int = 30) -> None:
    from core.database import check_db_connection

    print("Waiting for database to be ready...")
    for attempt in range(1, max_retries + 1):
        if check_db_connection():
            print("Database is ready!")
            break
        print(f"Database is unavailable - sleeping (attempt {attempt}/{max_retries})")
        time.sleep(1)
    else:
        print("ERROR: Database is not ready after maximum retries")
        sys.exit(1)

    try:
        alembic_upgrade_head()
    except Exception as e:
        print(f"ERROR: Alembic upgrade failed: {e}")
        sys.exit(1)
    print(f"Migrations completed successfully (revision {current_revision()})")


if __name__ == '__main__':
    main()
