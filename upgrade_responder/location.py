"""Coarse IP geolocation backed by a MaxMind City database."""

import ipaddress
import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import maxminddb

from .models import Country, Location


logger = logging.getLogger(__name__)

LOCATION_NAME_LOCALE = "en"


class LocationDatabaseError(RuntimeError):
    """Raised when the geolocation database cannot be opened."""


class LocationLookupError(LookupError):
    """Raised when an address cannot be resolved to a location."""


def _english_name(section: Any) -> str:
    if not isinstance(section, Mapping):
        return ""
    names = section.get("names")
    if not isinstance(names, Mapping):
        return ""
    return str(names.get(LOCATION_NAME_LOCALE, ""))


class LocationResolver:
    """Resolve client IPs to a city/country projection.

    The underlying ``maxminddb.Reader`` is opened once at startup and shared by
    all request threads; lookups are read-only.
    """

    def __init__(self, reader: Any) -> None:
        self._reader = reader
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, database_path: Union[str, Path]) -> "LocationResolver":
        """Open the MaxMind database at ``database_path``.

        Raises:
            LocationDatabaseError: If the file is missing, unreadable or not a MaxMind DB.
        """
        try:
            reader = maxminddb.open_database(str(database_path))
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as exc:
            message = f"Unable to open geolocation database {database_path}: {exc}"
            raise LocationDatabaseError(message) from exc
        logger.debug("GeoDB opened: %s", database_path)
        return cls(reader)

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve(self, ip_address: str) -> Location:
        """Return the location of ``ip_address``.

        Raises:
            LocationLookupError: On an unparseable address, a database miss, or
                when the database is unavailable.
        """
        try:
            address = ipaddress.ip_address((ip_address or "").strip())
        except ValueError as exc:
            message = f"Invalid IP address {ip_address!r}"
            raise LocationLookupError(message) from exc

        if self._closed:
            message = "Geolocation database is closed"
            raise LocationLookupError(message)

        try:
            record: Optional[Mapping[str, Any]] = self._reader.get(address)
        except (ValueError, maxminddb.InvalidDatabaseError) as exc:
            message = f"Geolocation lookup failed: {exc}"
            raise LocationLookupError(message) from exc

        if not record:
            message = "No geolocation record for address"
            raise LocationLookupError(message)

        country = record.get("country")
        iso_code = country.get("iso_code", "") if isinstance(country, Mapping) else ""
        return Location(
            city=_english_name(record.get("city")),
            country=Country(name=_english_name(country), iso_code=str(iso_code or "")),
        )

    def close(self) -> None:
        """Close the database handle; later calls are no-ops."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._reader.close()
        except Exception:
            logger.debug("Failed to close geodb", exc_info=True)
        else:
            logger.debug("Geodb connection closed")
