"""Best-effort usage telemetry for check-upgrade requests.

Each check produces one InfluxDB point tagged with the reported versions and,
when the public IP resolves, a coarse location. Raw client IPs are only used
for the lookup and are never written.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlparse

from influxdb import InfluxDBClient

from .location import LocationLookupError, LocationResolver
from .models import CheckUpgradeRequest, ClientMetadata, Location, MetricPoint
from .structured_logging import log_error, log_event


logger = logging.getLogger(__name__)

INFLUXDB_DATABASE = "longhorn_upgrade_responder"
INFLUXDB_MEASUREMENT = "longhorn_upgrade_query"
# ns is good for counting nodes
INFLUXDB_PRECISION_NANOSECOND = "n"
INFLUXDB_DEFAULT_PORT = 8086
INFLUXDB_TIMEOUT_SECONDS = 5.0

TAG_LONGHORN_VERSION = "longhorn_version"
TAG_KUBERNETES_VERSION = "kubernetes_version"
TAG_LOCATION_CITY = "city"
TAG_LOCATION_COUNTRY = "country"
TAG_LOCATION_COUNTRY_ISO_CODE = "country_isocode"

HTTP_HEADER_X_FORWARDED_FOR = "X-Forwarded-For"
HTTP_HEADER_REQUEST_ID = "X-Request-ID"


def extract_public_ip(forwarded_for: Iterable[str]) -> str:
    """Return the rightmost address of an ``X-Forwarded-For`` chain.

    Accepts repeated header values as well as comma-joined lists. The rightmost
    entry was added by our own edge and is the hardest to spoof.
    """
    addresses = [
        part.strip()
        for value in forwarded_for or ()
        for part in (value or "").split(",")
        if part.strip()
    ]
    return addresses[-1] if addresses else ""


def canonicalize_field(header_name: str) -> str:
    """``X-Request-ID`` -> ``x_request_id``."""
    return header_name.lower().replace("-", "_")


def build_point(
    request: CheckUpgradeRequest,
    request_id: str,
    location: Optional[Location],
    timestamp: Optional[datetime] = None,
) -> MetricPoint:
    tags = {
        TAG_LONGHORN_VERSION: request.longhorn_version,
        TAG_KUBERNETES_VERSION: request.kubernetes_version,
    }
    if location is not None:
        tags[TAG_LOCATION_CITY] = location.city
        tags[TAG_LOCATION_COUNTRY] = location.country.name
        tags[TAG_LOCATION_COUNTRY_ISO_CODE] = location.country.iso_code

    return MetricPoint(
        measurement=INFLUXDB_MEASUREMENT,
        tags=tags,
        fields={canonicalize_field(HTTP_HEADER_REQUEST_ID): request_id},
        timestamp=timestamp or datetime.now(timezone.utc),
    )


class InfluxSink:
    """Single shared InfluxDB connection writing to one fixed database."""

    def __init__(
        self,
        client: Any,
        database: str = INFLUXDB_DATABASE,
        precision: str = INFLUXDB_PRECISION_NANOSECOND,
    ) -> None:
        self._client = client
        self.database = database
        self.precision = precision
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_url(
        cls,
        url: str,
        username: str = "",
        password: str = "",
        database: str = INFLUXDB_DATABASE,
    ) -> "InfluxSink":
        """Connect to ``url`` and make sure the telemetry database exists.

        TLS certificates are not verified. Connection or ``CREATE DATABASE``
        failures propagate to the caller.
        """
        parsed = urlparse(url)
        host = parsed.hostname or "localhost"
        if ":" in host:
            # InfluxDBClient formats the base URL as scheme://host:port
            host = f"[{host}]"
        kwargs: Dict[str, Any] = {
            "host": host,
            "port": parsed.port or INFLUXDB_DEFAULT_PORT,
            "ssl": parsed.scheme == "https",
            "verify_ssl": False,
            "timeout": INFLUXDB_TIMEOUT_SECONDS,
            "retries": 1,
            "path": parsed.path.strip("/"),
        }
        if username:
            kwargs["username"] = username
        if password:
            kwargs["password"] = password

        sink = cls(InfluxDBClient(**kwargs), database=database)
        logger.debug("InfluxDB connection established")
        try:
            sink.create_database()
        except Exception:
            sink.close()
            raise
        return sink

    def create_database(self) -> None:
        """Idempotently create the telemetry database (``CREATE DATABASE``)."""
        self._client.create_database(self.database)

    def write(self, point: MetricPoint) -> None:
        if self._closed:
            message = "InfluxDB connection is closed"
            raise RuntimeError(message)
        self._client.write_points(
            [point.to_influx()],
            time_precision=self.precision,
            database=self.database,
        )

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._client.close()
        except Exception:
            logger.debug("Failed to close InfluxDB connection", exc_info=True)
        else:
            logger.debug("InfluxDB connection closed")


class TelemetryRecorder:
    """Record one usage point per check without ever affecting the response.

    Args:
        location_resolver: Shared LocationResolver, or None to skip enrichment.
        sink: Shared InfluxSink; None disables writes entirely.
        background: When True, ``dispatch`` runs each record on a detached thread.
    """

    def __init__(
        self,
        location_resolver: Optional[LocationResolver],
        sink: Optional[InfluxSink] = None,
        background: bool = True,
    ) -> None:
        self.location_resolver = location_resolver
        self.sink = sink
        self.background = background

    @property
    def enabled(self) -> bool:
        return self.sink is not None

    def dispatch(
        self, client: ClientMetadata, request: CheckUpgradeRequest
    ) -> Optional[threading.Thread]:
        """Fire-and-forget ``record``; returns the worker thread when backgrounded."""
        if not self.background:
            self.record(client, request)
            return None

        worker = threading.Thread(
            target=self.record,
            args=(client, request),
            name="telemetry-record",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            logger.exception("Failed to start telemetry thread")
            return None
        return worker

    def _resolve_location(self, public_ip: str, request_id: str) -> Optional[Location]:
        if self.location_resolver is None:
            return None
        try:
            return self.location_resolver.resolve(public_ip)
        except LocationLookupError:
            log_error(
                "location_lookup",
                "missing_address" if not public_ip else "lookup_failed",
                "Failed to get location for one ip",
                correlation_id=request_id,
            )
            return None
        except Exception as exc:
            log_error(
                "location_lookup",
                type(exc).__name__,
                f"Unexpected location resolver failure: {exc}",
                correlation_id=request_id,
            )
            return None

    def record(self, client: ClientMetadata, request: CheckUpgradeRequest) -> Optional[MetricPoint]:
        """Build and write the telemetry point for one check.

        Never raises; every failure is logged and dropped.

        Returns:
            The point handed to the sink, or None when nothing was written.
        """
        try:
            public_ip = extract_public_ip(client.forwarded_for)
            # The IP is only used for the lookup and is never stored.
            location = self._resolve_location(public_ip, client.request_id)
            log_event(
                "check_upgrade_request",
                severity="DEBUG",
                correlation_id=client.request_id,
                location=location,
                request=request.to_dict(),
            )

            if self.sink is None:
                return None

            point = build_point(request, client.request_id, location)
            self.sink.write(point)
            return point
        except Exception as exc:
            log_error(
                "record_request",
                type(exc).__name__,
                f"Failed to record request: {exc}",
                correlation_id=client.request_id,
            )
            return None
