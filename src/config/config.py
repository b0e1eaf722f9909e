"""Event gateway configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Broker and descriptor-service endpoints
- Durable subscription identity (client id, subscription name)
- Routing predicates (parent node id, node types)
- Lambda forwarding target
- Endpoint resolver retry and consumer tuning

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files.
"""

import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from core.errors.exceptions import ConfigurationError
from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

# Path of the topic endpoint relative to the event gateway base URL
EVENT_TOPIC_PATH = "/api/public/events/versions/1/events"

DEFAULT_CLIENT_ID = "bae3-event-example"
DEFAULT_SUBSCRIPTION_NAME = "event-example"
DEFAULT_CONTENT_NODE_TYPE = "cm:content"
DEFAULT_FOLDER_NODE_TYPE = "cm:folder"

# Default config file: config/config.yaml next to this module
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class GatewayConfig:
    """Event gateway configuration.

    Configuration structure:
        gateway:
          broker_url: ...             # Fallback broker when resolution fails
          event_gateway_url: ...      # Base URL of the event gateway
          topic: ...                  # Fallback topic when resolution fails
          client_id: ...              # Durable subscription client id
          subscription_name: ...      # Durable subscription (consumer group)
          predicates: {...}           # parent_node_id, content/folder node types
          lambda: {...}               # function_name, region
          resolver: {...}             # max_attempts, backoff_seconds, timeout_seconds
          consumer: {...}             # aiokafka consumer overrides

    Built once at startup and passed by reference to the resolver, pipeline
    and forwarder.
    """

    # =========================================================================
    # ENDPOINTS
    # =========================================================================
    broker_url: str = "localhost:9092"
    event_gateway_url: str = "http://localhost:8080/alfresco"
    topic_name: str = "alfresco.events"

    # =========================================================================
    # DURABLE SUBSCRIPTION
    # =========================================================================
    client_id: str = DEFAULT_CLIENT_ID
    subscription_name: str = DEFAULT_SUBSCRIPTION_NAME

    # =========================================================================
    # ROUTING
    # =========================================================================
    parent_node_id: str = ""
    content_node_type: str = DEFAULT_CONTENT_NODE_TYPE
    folder_node_type: str = DEFAULT_FOLDER_NODE_TYPE

    # =========================================================================
    # LAMBDA FORWARDING
    # =========================================================================
    lambda_function_name: str = ""
    lambda_region: str = "us-east-1"

    # =========================================================================
    # ENDPOINT RESOLVER
    # =========================================================================
    resolver_max_attempts: int = 30
    resolver_backoff_seconds: float = 2.0
    resolver_timeout_seconds: float = 10.0

    # =========================================================================
    # CONSUMER
    # =========================================================================
    consumer: Dict[str, Any] = field(default_factory=dict)

    @property
    def topic_endpoint_url(self) -> str:
        """Descriptor service URL derived from the event gateway base URL."""
        return self.event_gateway_url.rstrip("/") + EVENT_TOPIC_PATH

    def resolver_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.resolver_max_attempts,
            backoff_seconds=self.resolver_backoff_seconds,
            respect_permanent=False,
        )

    def validate(self) -> None:
        """Validate required fields and numeric ranges.

        Raises:
            ConfigurationError: On the first invalid setting found
        """
        required = {
            "broker_url": self.broker_url,
            "event_gateway_url": self.event_gateway_url,
            "topic": self.topic_name,
            "client_id": self.client_id,
            "subscription_name": self.subscription_name,
            "predicates.parent_node_id": self.parent_node_id,
            "lambda.function_name": self.lambda_function_name,
            "lambda.region": self.lambda_region,
        }
        missing = [key for key, value in required.items() if not value or not str(value).strip()]
        if missing:
            raise ConfigurationError(f"Missing required gateway settings: {', '.join(missing)}")

        if not self.event_gateway_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"event_gateway_url must start with http:// or https://, got: {self.event_gateway_url!r}"
            )

        if self.resolver_max_attempts < 1:
            raise ConfigurationError(
                f"resolver.max_attempts must be >= 1, got {self.resolver_max_attempts}"
            )
        if self.resolver_backoff_seconds < 0:
            raise ConfigurationError(
                f"resolver.backoff_seconds must be >= 0, got {self.resolver_backoff_seconds}"
            )
        if self.resolver_timeout_seconds <= 0:
            raise ConfigurationError(
                f"resolver.timeout_seconds must be > 0, got {self.resolver_timeout_seconds}"
            )

        self._validate_consumer_settings(self.consumer, "consumer")

    @staticmethod
    def _validate_enum(settings: Dict[str, Any], key: str, valid_values: List[Any], context: str) -> None:
        if key in settings and settings[key] not in valid_values:
            raise ConfigurationError(
                f"{context}: {key} must be one of {valid_values}, got '{settings[key]}'"
            )

    @staticmethod
    def _validate_min(settings: Dict[str, Any], key: str, min_value: float, context: str) -> None:
        if key in settings and settings[key] < min_value:
            raise ConfigurationError(f"{context}: {key} must be >= {min_value}, got {settings[key]}")

    def _validate_consumer_settings(self, settings: Dict[str, Any], context: str) -> None:
        """Validate consumer settings against Kafka requirements and logical constraints."""
        if "heartbeat_interval_ms" in settings and "session_timeout_ms" in settings:
            heartbeat = settings["heartbeat_interval_ms"]
            session_timeout = settings["session_timeout_ms"]
            if heartbeat >= session_timeout / 3:
                raise ConfigurationError(
                    f"{context}: heartbeat_interval_ms ({heartbeat}) must be < "
                    f"session_timeout_ms/3 ({session_timeout/3:.0f})"
                )

        if "session_timeout_ms" in settings and "max_poll_interval_ms" in settings:
            if settings["session_timeout_ms"] >= settings["max_poll_interval_ms"]:
                raise ConfigurationError(
                    f"{context}: session_timeout_ms ({settings['session_timeout_ms']}) must be < "
                    f"max_poll_interval_ms ({settings['max_poll_interval_ms']})"
                )

        self._validate_min(settings, "max_poll_records", 1, context)
        self._validate_enum(settings, "auto_offset_reset", ["earliest", "latest", "none"], context)


def _resolver_number(
    resolver: Dict[str, Any], key: str, default: float, cast: Callable[[Any], Any]
) -> Any:
    try:
        return cast(resolver.get(key, default))
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"resolver.{key} must be a number, got {resolver.get(key)!r}"
        ) from None


def config_from_dict(gateway: Dict[str, Any]) -> GatewayConfig:
    """Build a GatewayConfig from the (already env-expanded) ``gateway`` section."""
    predicates = gateway.get("predicates", {}) or {}
    lambda_cfg = gateway.get("lambda", {}) or {}
    resolver = gateway.get("resolver", {}) or {}

    return GatewayConfig(
        broker_url=str(gateway.get("broker_url", "localhost:9092")),
        event_gateway_url=str(gateway.get("event_gateway_url", "http://localhost:8080/alfresco")),
        topic_name=str(gateway.get("topic", "alfresco.events")),
        client_id=str(gateway.get("client_id", DEFAULT_CLIENT_ID)),
        subscription_name=str(gateway.get("subscription_name", DEFAULT_SUBSCRIPTION_NAME)),
        parent_node_id=str(predicates.get("parent_node_id", "") or ""),
        content_node_type=str(predicates.get("content_node_type", DEFAULT_CONTENT_NODE_TYPE)),
        folder_node_type=str(predicates.get("folder_node_type", DEFAULT_FOLDER_NODE_TYPE)),
        lambda_function_name=str(lambda_cfg.get("function_name", "") or ""),
        lambda_region=str(lambda_cfg.get("region", "us-east-1") or ""),
        resolver_max_attempts=_resolver_number(resolver, "max_attempts", 30, int),
        resolver_backoff_seconds=_resolver_number(resolver, "backoff_seconds", 2.0, float),
        resolver_timeout_seconds=_resolver_number(resolver, "timeout_seconds", 10.0, float),
        consumer=dict(gateway.get("consumer", {}) or {}),
    )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> GatewayConfig:
    """Load gateway configuration from a YAML file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigurationError: If the file is missing the gateway section or is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "gateway" not in yaml_data:
        raise ConfigurationError("Invalid config file: missing 'gateway:' section")

    gateway = yaml_data["gateway"] or {}
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        gateway = _deep_merge(gateway, overrides)

    config = config_from_dict(gateway)

    logger.debug("Configuration loaded successfully:")
    logger.debug(f"  - Event gateway: {config.event_gateway_url}")
    logger.debug(f"  - Fallback topic: {config.topic_name}")
    logger.debug(f"  - Lambda function: {config.lambda_function_name}")

    config.validate()
    logger.debug("Configuration validation passed")

    return config


_gateway_config: Optional[GatewayConfig] = None


def get_config() -> GatewayConfig:
    """Get or load the singleton gateway config instance."""
    global _gateway_config
    if _gateway_config is None:
        _gateway_config = load_config()
    return _gateway_config


def set_config(config: GatewayConfig) -> None:
    """Set the singleton gateway config instance (useful for testing)."""
    global _gateway_config
    _gateway_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _gateway_config
    _gateway_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Event Gateway Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show merged configuration
  python -m config.config --show-merged

  # Use custom config file, JSON output
  python -m config.config --config /path/to/config.yaml --validate --json
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate configuration")
    parser.add_argument("--show-merged", action="store_true", help="Display env-expanded configuration as YAML")
    parser.add_argument("--config", type=Path, help="Path to config.yaml file (default: src/config/config.yaml)")
    parser.add_argument("--json", action="store_true", help="Output in JSON format instead of human-readable")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate and not args.show_merged:
        parser.print_help()
        return 0

    config_path = args.config or DEFAULT_CONFIG_FILE
    try:
        config = load_config(config_path=config_path)
    except (FileNotFoundError, ConfigurationError) as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        return 1

    config_dict = _expand_env_vars(load_yaml(config_path))
    output: Dict[str, Any] = {}

    if args.validate:
        if args.json:
            output["validation"] = {"passed": True, "errors": []}
        else:
            print("✓ Configuration validation passed")
            print(f"  - Topic endpoint: {config.topic_endpoint_url}")
            print(f"  - Subscription: {config.client_id}/{config.subscription_name}")
            print(f"  - Lambda: {config.lambda_function_name} ({config.lambda_region})")

    if args.show_merged:
        if args.json:
            output["merged_config"] = config_dict
        else:
            print("\nConfiguration:")
            print("=" * 80)
            print(yaml.dump(config_dict, default_flow_style=False, sort_keys=False))
            print("=" * 80)

    if args.json:
        print(json.dumps(output, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
