from __future__ import annotations

import argparse
import logging
from logging.handlers import RotatingFileHandler
from typing import Any

import uvicorn
from dotenv import load_dotenv

from mjml_api.app import create_app
from mjml_api.config import LoggingConfig, ServiceConfig, ValidationLevel, load_service_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="MJML render API server")
    p.add_argument("--host", help="Bind address (env HOST, default 0.0.0.0)")
    p.add_argument("--port", type=int, help="Bind port (env PORT, default 80)")
    p.add_argument(
        "--keep-comments",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep HTML comments in the output (env KEEP_COMMENTS)",
    )
    p.add_argument(
        "--beautify",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Deprecated, ignored by mjml >= 4 (env BEAUTIFY)",
    )
    p.add_argument(
        "--minify",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Deprecated, ignored by mjml >= 4 (env MINIFY)",
    )
    p.add_argument(
        "--validation-level",
        choices=[v.value for v in ValidationLevel],
        help="mjml validation level (env VALIDATION_LEVEL, default soft)",
    )
    p.add_argument("--max-body", help="Max request body, e.g. 1mb (env MAX_BODY)")
    p.add_argument("--log-level", help="Logging level (env LOG_LEVEL, default INFO)")
    return p


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.max_body is not None:
        overrides["max_body"] = args.max_body

    render: dict[str, Any] = {}
    if args.keep_comments is not None:
        render["keep_comments"] = args.keep_comments
    if args.beautify is not None:
        render["beautify"] = args.beautify
    if args.minify is not None:
        render["minify"] = args.minify
    if args.validation_level is not None:
        render["validation_level"] = args.validation_level
    if render:
        overrides["render"] = render

    if args.log_level is not None:
        overrides["logging"] = {"level": args.log_level.upper()}
    return overrides


def configure_logging(config: LoggingConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    logging.basicConfig(level=config.level, format=LOG_FORMAT, handlers=handlers, force=True)


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    args = build_parser().parse_args(argv)
    config: ServiceConfig = load_service_config(overrides=overrides_from_args(args))
    configure_logging(config.logging)

    logging.getLogger(__name__).info(
        f"Starting mjml api server on {config.host}:{config.port}"
    )
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_config=None,
        timeout_graceful_shutdown=30,
    )


if __name__ == "__main__":
    main()
