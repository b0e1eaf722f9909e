"""Event gateway router entry point. Use --help for usage."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from prometheus_client import start_http_server

from config.config import DEFAULT_CONFIG_FILE, load_config
from core.errors.exceptions import ConfigurationError
from core.logging.setup import setup_logging
from core.utils import generate_worker_id
from event_gateway.runner import STAGE_NAME, run_gateway
from event_gateway.signals import setup_shutdown_signal_handlers

# Project root directory (where .env file is located)
# __main__.py is at src/event_gateway/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Route repository events to handlers and AWS Lambda",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with the default config (src/config/config.yaml)
    python -m event_gateway

    # Three consumers in the same subscription, logs to stdout
    python -m event_gateway --count 3 --log-to-stdout

    # Custom config, metrics exporter disabled
    python -m event_gateway --config /etc/gateway.yaml --metrics-port 0
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to config.yaml (default: {DEFAULT_CONFIG_FILE})",
    )

    parser.add_argument(
        "--count",
        "-c",
        type=int,
        default=1,
        help="Number of consumer instances to run concurrently (default: 1). "
        "Instances share the durable subscription for automatic partition distribution.",
    )

    parser.add_argument(
        "--metrics-port",
        type=int,
        default=8000,
        help="Port for Prometheus metrics server, 0 disables it (default: 8000)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )

    parser.add_argument(
        "--log-to-stdout",
        action="store_true",
        help="Send all log output to stdout only, skipping file handlers. "
        "Can also be set via LOG_TO_STDOUT environment variable.",
    )

    args = parser.parse_args(argv)
    if args.count < 1:
        parser.error("--count must be >= 1")
    return args


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _setup_logging(args: argparse.Namespace, worker_id: str) -> None:
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR") or "logs")
    setup_logging(
        name="event_gateway",
        stage=STAGE_NAME,
        domain="gateway",
        log_dir=log_dir,
        json_format=_env_flag("JSON_LOGS", "true"),
        console_level=getattr(logging, args.log_level),
        worker_id=worker_id,
        log_to_stdout=args.log_to_stdout or _env_flag("LOG_TO_STDOUT"),
    )


def start_metrics_server(port: int) -> None:
    if port <= 0:
        logger.info("Metrics server disabled")
        return
    start_http_server(port)
    logger.info("Metrics server started", extra={"port": port})


def main(argv: list[str] | None = None) -> int:
    global logger

    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)

    worker_id = os.getenv("WORKER_ID") or generate_worker_id(STAGE_NAME)
    _setup_logging(args, worker_id)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(config_path=args.config)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error("Configuration error", extra={"error_message": str(e)})
        return 2

    try:
        start_metrics_server(args.metrics_port)
    except OSError as e:
        logger.error(
            "Failed to start metrics server",
            extra={"error_message": str(e), "port": args.metrics_port},
        )
        return 1

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    shutdown_event = asyncio.Event()
    setup_shutdown_signal_handlers(loop, shutdown_event)

    exit_code = 0
    try:
        loop.run_until_complete(
            run_gateway(config, shutdown_event, count=args.count)
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error("Fatal error", extra={"error_message": str(e)}, exc_info=True)
        exit_code = 1
    finally:
        loop.close()
        logger.info("Gateway shutdown complete")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
