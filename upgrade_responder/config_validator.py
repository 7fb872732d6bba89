"""Configuration validation and startup checks."""

import ipaddress
import re
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from .logging_config import LOG_FORMATS
from .response_generator import ResponseStrategy


_HOSTNAME_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9.\-]*[a-z0-9])?$", re.IGNORECASE)


class ConfigValidationError(ValueError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


def validate_integer_range(
    value: Optional[str],
    name: str,
    min_val: int,
    max_val: int,
    default: int,
) -> int:
    """Validate integer config parameter with range check.

    Args:
        value: String value to parse
        name: Config parameter name (for error messages)
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)
        default: Default value if not provided

    Returns:
        Validated integer value

    Raises:
        ConfigValidationError: If value is not an integer or out of range
    """
    if value is None or value.strip() == "":
        return default

    try:
        parsed = int(value.strip())
    except ValueError:
        raise ConfigValidationError(
            f"{name} must be an integer, got: '{value}'",
            hint=f"Valid range: {min_val}-{max_val}",
        )

    if not (min_val <= parsed <= max_val):
        raise ConfigValidationError(
            f"{name} value out of range: {parsed}",
            hint=f"Valid range: {min_val}-{max_val}",
        )

    return parsed


def _is_valid_host(host: str) -> bool:
    if not host:
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return bool(_HOSTNAME_PATTERN.match(host))
    return True


def validate_url(value: str, name: str) -> str:
    """Validate an http(s) URL with a host and an optional port.

    IPv6 literal hosts are accepted in brackets (``http://[::1]:8086``).
    Credentials belong in UR_INFLUXDB_USER/UR_INFLUXDB_PASS, not the URL.

    Args:
        value: URL to validate
        name: Parameter name (for error messages)

    Returns:
        Validated URL

    Raises:
        ConfigValidationError: If URL format invalid
    """
    format_hint = "Expected format: http://host:port or https://host:port"
    if not value or not value.strip():
        raise ConfigValidationError(f"{name} cannot be empty", hint=format_hint)

    url = value.strip()

    if not url.startswith(("http://", "https://")):
        raise ConfigValidationError(
            f"{name} must start with http:// or https://, got: '{url}'",
            hint="Example: http://influxdb:8086",
        )

    try:
        parsed = urlsplit(url)
        host = parsed.hostname or ""
    except ValueError as exc:
        raise ConfigValidationError(f"{name} format invalid: '{url}'", hint=format_hint) from exc

    if parsed.username is not None or not _is_valid_host(host):
        raise ConfigValidationError(f"{name} format invalid: '{url}'", hint=format_hint)

    try:
        port = parsed.port
    except ValueError as exc:
        raise ConfigValidationError(
            f"{name} port invalid: '{url}'",
            hint="Valid port range: 1-65535",
        ) from exc
    if port == 0:
        raise ConfigValidationError(
            f"{name} port invalid: '{url}'",
            hint="Valid port range: 1-65535",
        )

    return url


def validate_response_strategy(value: str) -> ResponseStrategy:
    """Validate UR_RESPONSE_STRATEGY.

    Raises:
        ConfigValidationError: If not a known strategy
    """
    try:
        return ResponseStrategy.parse(value)
    except ValueError as exc:
        allowed = ", ".join(strategy.value for strategy in ResponseStrategy)
        raise ConfigValidationError(
            f"UR_RESPONSE_STRATEGY invalid: {exc}",
            hint=f"Set UR_RESPONSE_STRATEGY to one of: {allowed}",
        ) from exc


def validate_log_format(value: str) -> str:
    """Validate UR_LOG_FORMAT.

    Raises:
        ConfigValidationError: If not ``text`` or ``json``
    """
    normalized = value.strip().lower()
    if normalized not in LOG_FORMATS:
        raise ConfigValidationError(
            f"UR_LOG_FORMAT invalid: '{value}'",
            hint=f"Set UR_LOG_FORMAT to one of: {', '.join(LOG_FORMATS)}",
        )
    return normalized


def validate_all_config(config: Dict[str, Any]) -> None:
    """Validate cross-field configuration at startup.

    Args:
        config: Configuration dictionary returned from load_env_config()

    Raises:
        ConfigValidationError: If any configuration is invalid
    """
    if not str(config.get("config_path") or "").strip():
        raise ConfigValidationError(
            "UR_CONFIG_PATH cannot be empty",
            hint="Point UR_CONFIG_PATH at the versions JSON document",
        )

    if not str(config.get("geodb_path") or "").strip():
        raise ConfigValidationError(
            "UR_GEODB_PATH cannot be empty",
            hint="Point UR_GEODB_PATH at a MaxMind City .mmdb file",
        )

    influxdb_url = config.get("influxdb_url") or ""
    if influxdb_url:
        validate_url(influxdb_url, "UR_INFLUXDB_URL")
    elif config.get("influxdb_user") or config.get("influxdb_pass"):
        raise ConfigValidationError(
            "UR_INFLUXDB_USER/UR_INFLUXDB_PASS set without UR_INFLUXDB_URL",
            hint="Set UR_INFLUXDB_URL to enable telemetry, or unset the credentials",
        )
