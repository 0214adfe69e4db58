"""Run the relay backend with uvicorn."""

from __future__ import annotations

import argparse
import logging

from roomchat.backend.api import create_app
from roomchat.backend.config import BackendSettings, load_settings
from roomchat.backend.store import create_store
from roomchat.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_args(settings: BackendSettings, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Roomchat relay backend")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--log-level", default=settings.log_level)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    args = parse_args(settings, argv)
    setup_logging(args.log_level)

    import uvicorn

    store = create_store(database_url=settings.database_url, password_salt=settings.password_salt)
    logger.info(
        "Starting relay on %s:%s with %s",
        args.host,
        args.port,
        "postgres store" if settings.database_url else "in-memory store",
    )
    uvicorn.run(create_app(store=store), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
