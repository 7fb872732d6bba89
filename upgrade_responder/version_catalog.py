"""Validated, read-only catalog of known releases.

The catalog is built once at startup from the configuration document and
shared by every request thread afterwards. Lookups go through
``MappingProxyType`` views so there is no write path after construction.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

import semver

from .models import Version


logger = logging.getLogger(__name__)

VERSION_TAG_LATEST = "latest"

_RFC3339_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


class CatalogValidationError(ValueError):
    """Raised when the version configuration cannot be loaded into a catalog.

    ``entry`` carries the offending version entry when the failure is tied to one.
    """

    def __init__(self, message: str, entry: Optional[Version] = None):
        super().__init__(message)
        self.entry = entry


def parse_semver(name: str) -> semver.Version:
    """Parse a semantic version string such as ``v1.5.0`` or ``1.6.0-rc.1``.

    A leading ``v`` is accepted, and a missing minor or patch counts as zero
    (``v1.5`` is ``1.5.0``).

    Raises:
        ValueError: If ``name`` is not a valid semantic version.
    """
    if not isinstance(name, str):
        message = f"version must be a string, got {type(name).__name__}"
        raise ValueError(message)
    text = name[1:] if name.startswith("v") else name
    return semver.Version.parse(text, optional_minor_and_patch=True)


def parse_release_time(text: str) -> datetime:
    """Parse an RFC3339 timestamp (``2023-01-01T00:00:00Z``).

    Fractional seconds beyond microseconds are truncated.

    Raises:
        ValueError: If ``text`` is not RFC3339 or names an impossible date.
    """
    match = _RFC3339_PATTERN.match(text or "")
    if match is None:
        message = f"release date {text!r} is not an RFC3339 timestamp"
        raise ValueError(message)

    normalized = match.group("base")
    fraction = match.group("fraction")
    if fraction:
        normalized += "." + fraction[:6].ljust(6, "0")
    offset = match.group("offset")
    normalized += "+00:00" if offset == "Z" else offset
    return datetime.fromisoformat(normalized)


@dataclass(frozen=True)
class VersionCatalog:
    """Known versions indexed by name and by tag."""

    versions: Tuple[Version, ...]
    by_name: Mapping[str, Version]
    by_tag: Mapping[str, Version]

    def get_by_tag(self, tag: str) -> Optional[Version]:
        return self.by_tag.get(tag)

    def get_by_name(self, name: str) -> Optional[Version]:
        return self.by_name.get(name)

    @property
    def latest(self) -> Version:
        return self.by_tag[VERSION_TAG_LATEST]

    def __len__(self) -> int:
        return len(self.versions)

    def __iter__(self) -> Iterator[Version]:
        return iter(self.versions)


def build_catalog(versions: Iterable[Union[Version, Mapping[str, Any]]]) -> VersionCatalog:
    """Validate version entries and index them into an immutable catalog.

    Checks run in order and stop at the first failure: empty tags, duplicate
    name, invalid semantic version, invalid release date, duplicate tag.
    After all entries are indexed, a ``latest`` tag must exist.

    Args:
        versions: Entries as ``Version`` objects or their wire-form dicts.

    Returns:
        Fully validated VersionCatalog.

    Raises:
        CatalogValidationError: Naming the first offending entry.
    """
    ordered = []
    by_name: Dict[str, Version] = {}
    by_tag: Dict[str, Version] = {}

    for raw in versions:
        version = raw if isinstance(raw, Version) else Version.from_dict(raw)

        if not version.tags:
            message = f"invalid empty label for {version}"
            raise CatalogValidationError(message, entry=version)

        if version.name in by_name:
            message = f"invalid duplicate name {version.name}"
            raise CatalogValidationError(message, entry=version)

        try:
            parse_semver(version.name)
        except ValueError as exc:
            message = f"invalid semantic version {version.name!r}: {exc}"
            raise CatalogValidationError(message, entry=version) from exc

        try:
            parse_release_time(version.release_date)
        except ValueError as exc:
            message = f"invalid release date for {version.name}: {exc}"
            raise CatalogValidationError(message, entry=version) from exc

        for tag in version.tags:
            if tag in by_tag:
                message = (
                    f"invalid duplicate label {tag} on {version.name}, "
                    f"already claimed by {by_tag[tag].name}"
                )
                raise CatalogValidationError(message, entry=version)
            by_tag[tag] = version

        by_name[version.name] = version
        ordered.append(version)

    if VERSION_TAG_LATEST not in by_tag:
        message = f"no {VERSION_TAG_LATEST} label specified"
        raise CatalogValidationError(message)

    catalog = VersionCatalog(
        versions=tuple(ordered),
        by_name=MappingProxyType(by_name),
        by_tag=MappingProxyType(by_tag),
    )
    logger.info(
        "Version catalog loaded: versions=%d tags=%d latest=%s",
        len(catalog),
        len(by_tag),
        catalog.latest.name,
    )
    return catalog


def load_catalog(config_path: Union[str, Path]) -> VersionCatalog:
    """Load the startup configuration document and build the catalog.

    The document has the form ``{"Versions": [{"Name", "ReleaseDate", "Tags"}]}``.

    Raises:
        CatalogValidationError: If the file is unreadable, malformed, or fails validation.
    """
    path = Path(config_path)
    try:
        with path.open(encoding="utf-8") as f:
            document = json.load(f)
    except OSError as exc:
        message = f"unable to read version config {path}: {exc}"
        raise CatalogValidationError(message) from exc
    except json.JSONDecodeError as exc:
        message = f"malformed version config {path}: {exc}"
        raise CatalogValidationError(message) from exc

    if not isinstance(document, dict):
        message = f"version config {path} must be a JSON object"
        raise CatalogValidationError(message)

    entries = document.get("Versions") or []
    if not isinstance(entries, list) or not all(isinstance(item, dict) for item in entries):
        message = f"version config {path}: Versions must be a list of objects"
        raise CatalogValidationError(message)

    return build_catalog(entries)
