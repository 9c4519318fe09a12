"""Command-line entry point: load config and serve the proxy with uvicorn."""

import argparse
import dataclasses
import logging
import sys
from typing import Optional, Sequence

import uvicorn

from .config_loader import load_config
from .core.exceptions import ConfigurationError
from .logging import setup_logging
from .main import create_app

DEFAULT_HOST = "0.0.0.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anthropic-proxy",
        description="Serve the Anthropic Messages API on top of an OpenAI-compatible backend.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Config file to load before the default locations (.env or YAML).",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Bind address (default: {DEFAULT_HOST}).")
    parser.add_argument("-p", "--port", type=int, help="Listen port (overrides PORT).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log full request and response payloads.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logging(debug=args.debug, verbose=args.verbose)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc.message}")
        return 1

    config = dataclasses.replace(
        config,
        port=args.port or config.port,
        debug=config.debug or args.debug,
        verbose=config.verbose or args.verbose,
    )
    logger = setup_logging(debug=config.debug, verbose=config.verbose)
    logger.info("Configured bind address %s:%s", args.host, config.port)

    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host,
        port=config.port,
        log_level=logging.getLevelName(logger.level).lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
