#!/usr/bin/env python3
"""Command-line entry point for the Morph edit relay.

Run with:
    morph-relay --port 3333 --api-key sk-...
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

import uvicorn
from dotenv import load_dotenv

from app import create_app
from config import PartialConfig, configure_logging, resolve_config
from errors import ConfigError

logger = logging.getLogger("morph_relay")

_UVICORN_LEVELS = {"debug": "debug", "info": "info", "warn": "warning", "error": "error"}


def parse_args(argv: Optional[Sequence[str]] = None) -> PartialConfig:
    parser = argparse.ArgumentParser(
        prog="morph-relay",
        description="Local HTTP relay that applies file edits through Morph fast apply via OpenRouter.",
    )
    parser.add_argument("-p", "--port", help="Port to listen on. Defaults to 3333 or PORT env.")
    parser.add_argument("--host", help="Interface to bind. Defaults to 127.0.0.1 or HOST env.")
    parser.add_argument(
        "--base-url",
        help="Morph/OpenRouter base URL. Defaults to MORPH_BASE_URL env or https://openrouter.ai/api/v1.",
    )
    parser.add_argument("--model", help="Morph model identifier.")
    parser.add_argument("--api-key", help="Morph API key (can use MORPH_API_KEY env).")
    parser.add_argument("--timeout", help="Upstream request timeout in seconds.")
    parser.add_argument("--log-level", choices=["debug", "info", "warn", "error"])
    args = parser.parse_args(argv)

    explicit: PartialConfig = {}
    for key in ("port", "host", "base_url", "model", "api_key", "timeout", "log_level"):
        value = getattr(args, key)
        if value is not None:
            explicit[key] = value
    return explicit


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    explicit = parse_args(argv)

    try:
        config = resolve_config(explicit)
    except ConfigError as e:
        configure_logging("info")
        logger.error("Failed to start Morph relay: %s", e.message)
        return 1

    configure_logging(config.log_level)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=_UVICORN_LEVELS[config.log_level],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
