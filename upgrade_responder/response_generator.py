"""Decide which versions to report back to a requesting instance."""

import logging
from enum import Enum
from typing import Tuple, Union

import semver

from .models import CheckUpgradeRequest, CheckUpgradeResponse, Version
from .version_catalog import VERSION_TAG_LATEST, VersionCatalog, parse_semver


logger = logging.getLogger(__name__)

MINIMAL_CLIENT_VERSION = "v0.0.1"


class ResponseStrategy(Enum):
    """Response policy selected at startup."""

    ALWAYS_LATEST = "always-latest"
    ONLY_IF_BEHIND = "only-if-behind"

    @classmethod
    def parse(cls, value: Union[str, "ResponseStrategy"]) -> "ResponseStrategy":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        allowed = ", ".join(strategy.value for strategy in cls)
        message = f"Unknown response strategy '{value}', expected one of: {allowed}"
        raise ValueError(message)


class LatestVersionLookupError(LookupError):
    """The catalog could not produce a valid ``latest`` version."""


class ResponseGenerator:
    """Build check-upgrade responses from a read-only VersionCatalog."""

    def __init__(
        self,
        catalog: VersionCatalog,
        strategy: Union[str, ResponseStrategy] = ResponseStrategy.ALWAYS_LATEST,
    ) -> None:
        self.catalog = catalog
        self.strategy = ResponseStrategy.parse(strategy)

    def _parsed_version_with_tag(self, tag: str) -> Tuple[semver.Version, Version]:
        version = self.catalog.get_by_tag(tag)
        if version is None:
            message = f"cannot find version with tag {tag}"
            raise LatestVersionLookupError(message)
        try:
            parsed = parse_semver(version.name)
        except ValueError as exc:
            message = f"version {version.name} is not valid with tag {tag}"
            raise LatestVersionLookupError(message) from exc
        return parsed, version

    def _parse_client_version(self, reported: str) -> semver.Version:
        try:
            return parse_semver(reported)
        except ValueError:
            logger.warning(
                "Invalid version in request: %r, comparing as %s",
                reported,
                MINIMAL_CLIENT_VERSION,
            )
            return parse_semver(MINIMAL_CLIENT_VERSION)

    def generate(self, request: CheckUpgradeRequest) -> CheckUpgradeResponse:
        """Return the versions to report for ``request``.

        Raises:
            LatestVersionLookupError: If ``latest`` cannot be resolved. The
                catalog guarantees it at construction, so this is a bug.
        """
        try:
            latest_parsed, latest = self._parsed_version_with_tag(VERSION_TAG_LATEST)
        except LatestVersionLookupError as exc:
            logger.error("BUG: unable to get a valid tag for %s: %s", VERSION_TAG_LATEST, exc)
            raise

        if self.strategy is ResponseStrategy.ONLY_IF_BEHIND:
            client_version = self._parse_client_version(request.longhorn_version)
            if not client_version < latest_parsed:
                return CheckUpgradeResponse(versions=())

        return CheckUpgradeResponse(versions=(latest,))
