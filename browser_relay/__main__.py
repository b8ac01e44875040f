"""Run the relay with uvicorn: ``python -m browser_relay``."""

from __future__ import annotations

import argparse

import uvicorn

from browser_relay.core.config import Settings
from browser_relay.core.logging_config import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the browser relay.")
    parser.add_argument("--host", default=None, help="Bind address (overrides settings/env).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (overrides settings/env).")
    parser.add_argument("--log-level", default=None, help="Log level (overrides settings/env).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = Settings()
    log_level = (args.log_level or settings.LOG_LEVEL).upper()
    configure_logging(log_level)
    uvicorn.run(
        "browser_relay.main:app",
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
