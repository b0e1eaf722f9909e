"""Configuration loading for the event gateway.

Configuration lives in a single YAML file (``config/config.yaml`` by default)
with a ``gateway:`` section. ``${VAR}`` and ``${VAR:-default}`` references are
expanded from the environment; the entry point loads ``.env`` first.

Main Functions
--------------

    - load_config(): Load and validate configuration from YAML
    - get_config(): Get or load the singleton config instance
    - set_config() / reset_config(): Replace or clear the singleton (tests)

Usage:
    >>> from config import load_config
    >>> config = load_config()
    >>> config.topic_endpoint_url
    'http://localhost:8080/alfresco/api/public/events/versions/1/events'
"""

from config.config import (
    EVENT_TOPIC_PATH,
    GatewayConfig,
    config_from_dict,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "config_from_dict",
    "GatewayConfig",
    "EVENT_TOPIC_PATH",
]
