"""Value types shared by the catalog, response and telemetry layers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Tuple


@dataclass(frozen=True)
class Version:
    """A released version as declared in the startup configuration."""

    name: str
    """Semantic version string (e.g. ``v1.5.0``)."""

    release_date: str
    """RFC3339 release timestamp, kept verbatim for the wire."""

    tags: Tuple[str, ...] = ()
    """Labels claimed by this version (``latest``, ``stable``...)."""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Version":
        """Build a Version from its wire form (``Name``/``ReleaseDate``/``Tags``)."""
        tags = raw.get("Tags") or ()
        if isinstance(tags, str):
            tags = (tags,)
        return cls(
            name=str(raw.get("Name", "")),
            release_date=str(raw.get("ReleaseDate", "")),
            tags=tuple(str(tag) for tag in tags),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "ReleaseDate": self.release_date,
            "Tags": list(self.tags),
        }


@dataclass(frozen=True)
class Country:
    name: str = ""
    iso_code: str = ""


@dataclass(frozen=True)
class Location:
    """Coarse client location derived from the public IP; never persisted."""

    city: str = ""
    country: Country = field(default_factory=Country)


@dataclass(frozen=True)
class CheckUpgradeRequest:
    """Versions reported by a deployed instance; values are not validated."""

    longhorn_version: str = ""
    kubernetes_version: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CheckUpgradeRequest":
        def _text(key: str) -> str:
            value = raw.get(key)
            return "" if value is None else str(value)

        return cls(
            longhorn_version=_text("longhornVersion"),
            kubernetes_version=_text("kubernetesVersion"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "longhornVersion": self.longhorn_version,
            "kubernetesVersion": self.kubernetes_version,
        }


@dataclass(frozen=True)
class CheckUpgradeResponse:
    versions: Tuple[Version, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CheckUpgradeResponse":
        return cls(versions=tuple(Version.from_dict(item) for item in raw.get("versions") or ()))

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {"versions": [version.to_dict() for version in self.versions]}


@dataclass(frozen=True)
class ClientMetadata:
    """Header values captured from the inbound request for telemetry.

    Copied out of the request so telemetry can run after the request
    context is gone.
    """

    forwarded_for: Tuple[str, ...] = ()
    request_id: str = ""


@dataclass(frozen=True)
class MetricPoint:
    """A single telemetry point handed to the metrics sink."""

    measurement: str
    tags: Mapping[str, str]
    fields: Mapping[str, Any]
    timestamp: datetime

    def to_influx(self) -> Dict[str, Any]:
        """Return the point in the dict shape accepted by ``InfluxDBClient.write_points``."""
        return {
            "measurement": self.measurement,
            "tags": dict(self.tags),
            "fields": dict(self.fields),
            "time": self.timestamp,
        }
