import os
from typing import Any, Dict, Optional

from .config_validator import (
    validate_all_config,
    validate_integer_range,
    validate_log_format,
    validate_response_strategy,
)


DEFAULT_CONFIG_PATH = "/etc/upgrade-responder/config.json"
DEFAULT_GEODB_PATH = "/usr/share/GeoIP/GeoLite2-City.mmdb"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_PORT = 8314
DEFAULT_RESPONSE_STRATEGY = "always-latest"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "text"


def _parse_bool(raw_value: Optional[str], default: bool = False) -> bool:
    if raw_value is None or raw_value.strip() == "":
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def load_env_config() -> Dict[str, Any]:
    """Load and validate runtime configuration from environment variables.

    Variables:
    - UR_CONFIG_PATH: versions JSON document
    - UR_GEODB_PATH: MaxMind City database
    - UR_INFLUXDB_URL / UR_INFLUXDB_USER / UR_INFLUXDB_PASS: telemetry sink;
      telemetry is disabled when the URL is empty
    - UR_RESPONSE_STRATEGY: always-latest (default) or only-if-behind
    - UR_BIND_HOST / UR_PORT: listen address (default 0.0.0.0:8314)
    - UR_TELEMETRY_BACKGROUND: record telemetry on a detached thread (default true)
    - UR_LOG_LEVEL / UR_LOG_FORMAT: root level (default INFO) and text|json output
    - UR_LOG_INCLUDE_IDENTIFIERS: add process and thread names to log lines
    - UR_DEBUG: force DEBUG logging
    - UR_SENTRY_DSN: optional Sentry error tracking

    Returns:
        Config dict consumed by open_resources() and create_app().

    Raises:
        ConfigValidationError: If any value is invalid.
    """
    config: Dict[str, Any] = {
        "config_path": _env("UR_CONFIG_PATH", DEFAULT_CONFIG_PATH),
        "geodb_path": _env("UR_GEODB_PATH", DEFAULT_GEODB_PATH),
        "influxdb_url": _env("UR_INFLUXDB_URL"),
        "influxdb_user": _env("UR_INFLUXDB_USER"),
        "influxdb_pass": os.environ.get("UR_INFLUXDB_PASS", ""),
        "response_strategy": validate_response_strategy(
            _env("UR_RESPONSE_STRATEGY", DEFAULT_RESPONSE_STRATEGY)
        ),
        "bind_host": _env("UR_BIND_HOST", DEFAULT_BIND_HOST) or DEFAULT_BIND_HOST,
        "port": validate_integer_range(
            os.environ.get("UR_PORT"), "UR_PORT", 1, 65535, DEFAULT_PORT
        ),
        "telemetry_background": _parse_bool(
            os.environ.get("UR_TELEMETRY_BACKGROUND"), default=True
        ),
        "log_level": _env("UR_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper() or DEFAULT_LOG_LEVEL,
        "log_format": validate_log_format(
            _env("UR_LOG_FORMAT", DEFAULT_LOG_FORMAT) or DEFAULT_LOG_FORMAT
        ),
        "log_include_identifiers": _parse_bool(os.environ.get("UR_LOG_INCLUDE_IDENTIFIERS")),
        "debug": _parse_bool(os.environ.get("UR_DEBUG")),
        "sentry_dsn": _env("UR_SENTRY_DSN"),
    }

    validate_all_config(config)
    return config
