"""Create the rooms, participants and messages tables in PostgreSQL."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

from roomchat.backend.config import load_settings
from roomchat.logging_config import setup_logging

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def load_schema(path: Path = SCHEMA_PATH) -> str:
    return path.read_text(encoding="utf-8")


def apply_schema(conn: Any, schema_sql: str) -> None:
    """Run the idempotent schema script in one transaction."""
    with conn.cursor() as cur:
        cur.execute(schema_sql)
    conn.commit()


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Apply the roomchat database schema")
    parser.add_argument("--database-url", default=settings.database_url)
    args = parser.parse_args(argv)
    setup_logging(settings.log_level)

    if not args.database_url:
        logger.error("ROOMCHAT_DATABASE_URL or --database-url is required for migration")
        return 2

    import psycopg

    with psycopg.connect(args.database_url) as conn:
        apply_schema(conn, load_schema())
    logger.info("Schema applied from %s", SCHEMA_PATH.name)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
