"""
Pytest configuration and shared fixtures.
"""

import ipaddress
import json
import sys
from pathlib import Path
from unittest import mock

import pytest


# Add the workspace root to path
WORKSPACE_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(WORKSPACE_ROOT))


LATEST_VERSION = {
    "Name": "v1.5.0",
    "ReleaseDate": "2023-01-01T00:00:00Z",
    "Tags": ["latest", "stable"],
}

GEO_RECORDS = {
    "81.2.69.142": {
        "city": {"names": {"en": "London", "de": "London"}},
        "country": {"names": {"en": "United Kingdom", "fr": "Royaume-Uni"}, "iso_code": "GB"},
    },
    "2001:218::1": {
        "country": {"names": {"en": "Japan"}, "iso_code": "JP"},
    },
}


class FakeGeoReader:
    """Stand-in for ``maxminddb.Reader`` keyed by address string."""

    def __init__(self, records=None):
        self.records = dict(GEO_RECORDS if records is None else records)
        self.lookups = []
        self.close_calls = 0

    def get(self, address):
        if self.close_calls:
            raise ValueError("Attempt to read from a closed MaxMind DB.")
        assert isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address))
        self.lookups.append(str(address))
        return self.records.get(str(address))

    def close(self):
        self.close_calls += 1


@pytest.fixture
def workspace_root():
    """Return the absolute path to the workspace root."""
    return WORKSPACE_ROOT


@pytest.fixture
def versions_document():
    """Return a valid versions configuration document."""
    return {
        "Versions": [
            {"Name": "v1.4.0", "ReleaseDate": "2022-09-01T00:00:00Z", "Tags": ["v1.4.x"]},
            dict(LATEST_VERSION),
            {"Name": "v1.6.0-rc1", "ReleaseDate": "2023-02-01T10:30:00+02:00", "Tags": ["dev"]},
        ]
    }


@pytest.fixture
def config_file(tmp_path, versions_document):
    """Write the versions document to disk and return its path."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(versions_document), encoding="utf-8")
    return path


@pytest.fixture
def fake_geo_reader():
    return FakeGeoReader()


@pytest.fixture
def geo_reader_factory():
    """Return the FakeGeoReader class for tests needing custom records."""
    return FakeGeoReader


@pytest.fixture
def influx_client():
    """Mock ``InfluxDBClient`` instance."""
    client = mock.MagicMock(name="InfluxDBClient")
    client.write_points.return_value = True
    return client


@pytest.fixture
def full_config(config_file, tmp_path):
    """Return complete config dict with all runtime keys."""
    from upgrade_responder.response_generator import ResponseStrategy

    return {
        "config_path": str(config_file),
        "geodb_path": str(tmp_path / "GeoLite2-City.mmdb"),
        "influxdb_url": "",
        "influxdb_user": "",
        "influxdb_pass": "",
        "response_strategy": ResponseStrategy.ALWAYS_LATEST,
        "bind_host": "127.0.0.1",
        "port": 8314,
        "telemetry_background": False,
        "debug": False,
        "sentry_dsn": "",
    }
