"""Process-wide resources opened once at startup and released once at shutdown."""

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Any, Dict, Iterator, Optional

from .location import LocationResolver
from .telemetry import InfluxSink
from .version_catalog import VersionCatalog, load_catalog


logger = logging.getLogger(__name__)


class ServerResources:
    """Catalog plus the shared geolocation and telemetry handles."""

    def __init__(
        self,
        catalog: VersionCatalog,
        location_resolver: LocationResolver,
        sink: Optional[InfluxSink] = None,
    ) -> None:
        self.catalog = catalog
        self.location_resolver = location_resolver
        self.sink = sink
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the geo database and the sink exactly once.

        Close errors are logged, never raised. Requests still in flight may
        observe closed handles; telemetry treats that as a best-effort failure.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        for name, resource in (("geodb", self.location_resolver), ("influxdb", self.sink)):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception:
                logger.exception("Failed to close %s", name)
        logger.info("Server resources released")


@contextmanager
def open_resources(config: Dict[str, Any]) -> Iterator[ServerResources]:
    """Acquire the catalog, geo database and optional sink for the process lifetime.

    Anything opened before a startup failure is closed before the error
    propagates.

    Raises:
        CatalogValidationError: Invalid version configuration.
        LocationDatabaseError: Geolocation database unavailable.
        Exception: Any InfluxDB connection or ``CREATE DATABASE`` failure.
    """
    with ExitStack() as stack:
        catalog = load_catalog(config["config_path"])

        location_resolver = LocationResolver.open(config["geodb_path"])
        stack.callback(location_resolver.close)

        sink = None
        if config.get("influxdb_url"):
            sink = InfluxSink.from_url(
                config["influxdb_url"],
                username=config.get("influxdb_user", ""),
                password=config.get("influxdb_pass", ""),
            )
            stack.callback(sink.close)

        resources = ServerResources(catalog, location_resolver, sink)
        stack.callback(resources.close)
        yield resources
