"""Sentry error tracking initialization and configuration.

Provides optional error tracking integration when UR_SENTRY_DSN is set.
Events are filtered so client addresses and InfluxDB credentials never leave
the process.
"""

import logging
import re
from importlib import metadata
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from . import __version__


_CLIENT_ADDRESS_HEADERS = {"x-forwarded-for", "x-real-ip", "forwarded"}
_SECRET_ENV_KEYS = {"UR_INFLUXDB_PASS", "UR_INFLUXDB_USER", "UR_SENTRY_DSN"}
DISTRIBUTION_NAME = "upgrade-responder"


def _release() -> str:
    """Release tag for Sentry: the installed distribution version, else the source version."""
    try:
        return f"{DISTRIBUTION_NAME}@{metadata.version(DISTRIBUTION_NAME)}"
    except metadata.PackageNotFoundError:
        return f"{DISTRIBUTION_NAME}@{__version__}"


def _redact_event(event: Dict[str, Any], _hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Redact client addresses and credentials from Sentry events.

    Redacts:
    - Forwarded-address headers (raw client IPs)
    - The remote address in the request environment
    - Credentials embedded in URLs and secret environment variables

    Args:
        event: Sentry event dictionary to filter
        _hint: Additional context - unused but required by API

    Returns:
        Modified event
    """
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            for key in list(headers):
                if key.lower() in _CLIENT_ADDRESS_HEADERS:
                    headers[key] = "[REDACTED]"

        env = request.get("env")
        if isinstance(env, dict) and "REMOTE_ADDR" in env:
            env["REMOTE_ADDR"] = "[REDACTED]"

        if isinstance(request.get("url"), str):
            request["url"] = re.sub(r"//[^/@]+@", "//[REDACTED]@", request["url"])

    contexts = event.get("contexts")
    if isinstance(contexts, dict) and isinstance(contexts.get("env"), dict):
        env_context = contexts["env"]
        for key in _SECRET_ENV_KEYS:
            if key in env_context:
                env_context[key] = "[REDACTED]"

    return event


def _traces_sampler(sampling_context: Dict[str, Any]) -> float:
    """Determine traces sample rate per transaction.

    - /healthcheck → 0.0 (probe noise)
    - everything else → 0.1
    """
    wsgi_environ = sampling_context.get("wsgi_environ", {})
    path = wsgi_environ.get("PATH_INFO", "")
    if path == "/healthcheck":
        return 0.0
    return 0.1


def init_sentry(sentry_dsn: Optional[str]) -> None:
    """Initialize Sentry SDK for error tracking.

    Only initializes if a DSN is provided. ERROR+ log lines (including the
    ``BUG:`` latest-lookup errors) become Sentry events.

    Args:
        sentry_dsn: Sentry DSN URL (from UR_SENTRY_DSN). If None or empty,
            Sentry is disabled.
    """
    if not sentry_dsn:
        return

    sentry_sdk.init(  # type: ignore[call-arg]
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.WARNING,
                event_level=logging.ERROR,
            ),
        ],
        traces_sampler=_traces_sampler,
        release=_release(),
        before_send=_redact_event,  # type: ignore[arg-type]
        send_default_pii=False,
        environment="production",
    )
    sentry_sdk.set_tag("service", DISTRIBUTION_NAME)
