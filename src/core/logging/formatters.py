"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.logging.message_context import get_message_context
from core.utils.json_serializers import json_serializer


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs to remove sensitive tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Errors
        "error_category",
        "error_message",
        "error_type",
        "error",
        # Resilience
        "operation",
        "attempt",
        "max_attempts",
        "total_attempts",
        "delay_seconds",
        "delay_source",
        "callback_error",
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "duration_ms",
        # Endpoint resolution
        "topic_name",
        "broker_uri",
        "descriptor_source",
        # Routing
        "event_type",
        "node_id",
        "node_type",
        "route",
        "handler_name",
        "parent_node_id",
        "payload_size",
        "body",
        # Forwarding
        "function_name",
        "function_region",
        "status_code",
        "request_id",
        # Consumer
        "group_id",
        "client_id",
        "bootstrap_servers",
        "topics",
        "pending_forwards",
        # Runner
        "event_id",
        "handlers",
        "worker_name",
        "count",
        "port",
        "signal",
    ]

    # Keeps numeric fields numeric in the JSON output
    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_seconds": float,
        "attempt": int,
        "max_attempts": int,
        "total_attempts": int,
        "http_status": int,
        "status_code": int,
        "payload_size": int,
        "pending_forwards": int,
        "count": int,
        "port": int,
        "message_partition": int,
        "message_offset": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["http_url", "broker_uri", "url"]

    # Pattern to match sensitive query parameters
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(sig|token|key|secret|password|auth)=[^&]*",
        re.IGNORECASE,
    )

    def _sanitize_url(self, url: str) -> str:
        return self.SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", url)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return self._sanitize_url(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        """Convert a numeric field to its declared type, or None if it won't convert."""
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        try:
            return self.NUMERIC_FIELDS[field](value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    def _inject_context(self, log_entry: dict[str, Any]) -> None:
        for field, value in get_log_context().items():
            if value:
                log_entry[field] = value
        for field, value in get_message_context().items():
            log_entry[field] = self._ensure_type(field, value)

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry)

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        color = self.COLORS.get(record.levelno, "") if self._use_colors else ""
        if not color:
            return level_name
        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]
        if log_context["stage"]:
            parts.append(f"[{log_context['stage']}]")
        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        tags = []
        route = getattr(record, "route", None)
        event_id = getattr(record, "event_id", None) or log_context.get("event_id")
        if route:
            tags.append(f"[route:{route}]")
        if event_id:
            tags.append(f"[{str(event_id)[:8]}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        log_context = get_log_context()

        prefix = self._build_prefix(self._format_level_name(record), log_context)
        tags = self._build_tags(record, log_context)
        message = record.getMessage()
        if tags:
            message = f"{' '.join(tags)} {message}"

        line = f"{prefix} - {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
