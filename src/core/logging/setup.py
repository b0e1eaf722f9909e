"""Logging setup and configuration."""

import io
import logging
import shutil
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiokafka",
    "aiohttp",
    "botocore",
    "boto3",
    "urllib3",
]


class ArchivingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """
    TimedRotatingFileHandler that moves rotated files into an archive folder.

    Example:
        logs/gateway/2026-01-05/gateway_router_0105_1430.log              (current)
        logs/gateway/2026-01-05/archive/gateway_router_0105_1430.log.2026-01-05
    """

    def __init__(
        self,
        filename,
        when=DEFAULT_ROTATION_WHEN,
        interval=DEFAULT_ROTATION_INTERVAL,
        backupCount=0,
        encoding=None,
        delay=False,
        utc=False,
        archive_dir=None,
    ):
        super().__init__(filename, when, interval, backupCount, encoding, delay, utc)
        log_path = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else log_path.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def doRollover(self):
        super().doRollover()

        log_path = Path(self.baseFilename)
        for rotated_file in log_path.parent.glob(f"{log_path.name}.*"):
            if rotated_file == log_path:
                continue
            try:
                shutil.move(str(rotated_file), str(self.archive_dir / rotated_file.name))
            except OSError as e:
                # stderr rather than the logger to avoid recursing into this handler
                print(f"Warning: Failed to archive {rotated_file}: {e}", file=sys.stderr)


def get_log_file_path(
    log_dir: Path,
    domain: str | None = None,
    stage: str | None = None,
    instance_id: str | None = None,
) -> Path:
    """
    Build log file path with domain/date subfolder structure.

    Structure: {log_dir}/{domain}/{YYYY-MM-DD}/{domain}_{stage}_{MMDD}_{HHMM}[_{instance}].log

    Examples:
        logs/gateway/2026-01-05/gateway_router_0105_1430.log
        logs/gateway/2026-01-05/gateway_router_0105_1430_1.log
    """
    now = datetime.now()
    date_folder = now.strftime("%Y-%m-%d")
    stamp = now.strftime("%m%d_%H%M")

    name_parts = [p for p in (domain, stage) if p] or ["gateway"]
    name_parts.append(stamp)
    if instance_id:
        name_parts.append(instance_id)
    filename = "_".join(name_parts) + ".log"

    if domain:
        return log_dir / domain / date_folder / filename
    return log_dir / date_folder / filename


def setup_logging(
    name: str = "event_gateway",
    stage: str | None = None,
    domain: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Configure logging with a console handler and an archiving rotating file handler.

    Args:
        name: Logger name returned to the caller
        stage: Stage name for context and file naming
        domain: Domain name for context and file naming
        log_dir: Directory for log files (default: ./logs)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate logs - 'midnight', 'H', 'M'
        rotation_interval: Interval for rotation
        backup_count: Number of rotated files to keep
        suppress_noisy: Quiet down Kafka, HTTP and AWS SDK loggers
        worker_id: Worker identifier for context
        log_to_stdout: Send all output to stdout only, skipping file handlers.
            Useful for containers where logs are captured from stdout.

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or DEFAULT_LOG_DIR

    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)
    if domain:
        set_log_context(domain=domain)

    if sys.platform == "win32":
        stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    else:
        stream = sys.stdout
    console_handler = logging.StreamHandler(stream)
    console_handler.setFormatter(ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    log_file = None
    if log_to_stdout:
        console_handler.setLevel(min(console_level, file_level))
        root_logger.addHandler(console_handler)
    else:
        console_handler.setLevel(console_level)

        log_file = get_log_file_path(log_dir, domain=domain, stage=stage)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        file_handler = ArchivingTimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(file_formatter)

        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    if log_file is None:
        logger.debug("Logging initialized: stdout-only mode")
    else:
        logger.debug(f"Logging initialized: file={log_file}, json={json_format}")

    return logger


def log_worker_startup(
    logger: logging.Logger,
    worker_name: str,
    bootstrap_servers: str | None = None,
    input_topic: str | None = None,
    consumer_group: str | None = None,
    extra_config: dict | None = None,
) -> None:
    """Log a startup banner with the subscription settings of a worker."""
    logger.info("=" * 70)
    logger.info("Starting %s", worker_name)
    logger.info("=" * 70)
    if bootstrap_servers:
        logger.info("Bootstrap servers: %s", bootstrap_servers)
    if input_topic:
        logger.info("Input topic: %s", input_topic)
    if consumer_group:
        logger.info("Consumer group: %s", consumer_group)
    for key, value in (extra_config or {}).items():
        logger.info("%s: %s", key, value)
    logger.info("=" * 70)
