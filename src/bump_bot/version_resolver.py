"""
npm version resolution for Bump Bot.

The registry's ``dist-tags.latest`` pointer is occasionally moved to a canary or
release candidate during coordinated rollouts. This module resolves the latest
*stable* version of a package instead, scanning every published version when
the tag cannot be trusted.
"""

import re
from datetime import UTC, datetime
from functools import total_ordering
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .config import Settings
from .exceptions import RegistryError
from .models import LatestStableVersion, PackageVersionInfo

logger = structlog.get_logger(__name__)

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

_EPOCH = datetime.min.replace(tzinfo=UTC)


@total_ordering
class SemVer:
    """A parsed semantic version with npm precedence rules."""

    __slots__ = ("major", "minor", "patch", "prerelease", "build")

    def __init__(
        self,
        major: int,
        minor: int,
        patch: int,
        prerelease: tuple[str, ...] = (),
        build: tuple[str, ...] = (),
    ) -> None:
        self.major = major
        self.minor = minor
        self.patch = patch
        self.prerelease = prerelease
        self.build = build

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _precedence(self) -> tuple[Any, ...]:
        # A version without prerelease identifiers outranks any prerelease of
        # the same core; numeric identifiers sort before alphanumeric ones.
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease
        )
        return (
            self.major,
            self.minor,
            self.patch,
            0 if self.prerelease else 1,
            identifiers,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence() == other._precedence()

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence() < other._precedence()

    def __hash__(self) -> int:
        return hash(self._precedence())

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += "-" + ".".join(self.prerelease)
        if self.build:
            version += "+" + ".".join(self.build)
        return version

    def __repr__(self) -> str:
        return f"SemVer('{self}')"


def parse_semver(version: str) -> SemVer | None:
    """
    Parse a semantic version string.

    Args:
        version: Version string such as ``4.18.0`` or ``4.0.0-canary.0``

    Returns:
        Parsed version, or None when the string is not valid semver
    """
    match = _SEMVER_RE.match(version.strip())
    if not match:
        return None
    major, minor, patch, prerelease, build = match.groups()
    return SemVer(
        int(major),
        int(minor),
        int(patch),
        tuple(prerelease.split(".")) if prerelease else (),
        tuple(build.split(".")) if build else (),
    )


def is_prerelease(version: str) -> bool:
    """Return True when the version carries a prerelease identifier."""
    parsed = parse_semver(version)
    return parsed is not None and parsed.is_prerelease


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def list_versions(metadata: dict[str, Any]) -> list[PackageVersionInfo]:
    """Build version records for every valid semver key in ``versions``."""
    times = metadata.get("time") or {}
    infos = []
    for version in (metadata.get("versions") or {}).keys():
        parsed = parse_semver(version)
        if parsed is None:
            continue
        infos.append(
            PackageVersionInfo(
                version=version,
                published_at=times.get(version),
                is_prerelease=parsed.is_prerelease,
            )
        )
    return infos


def select_latest_stable(metadata: dict[str, Any]) -> LatestStableVersion:
    """
    Pick the latest stable version from registry metadata.

    If ``dist-tags.latest`` is a stable version it is returned as-is along with
    its publish time. Otherwise the highest stable semver in ``versions`` wins;
    equal precedence is broken by the most recent publish time.

    Args:
        metadata: Registry document for one package

    Returns:
        The resolved version, or an empty result when no stable version exists
    """
    times = metadata.get("time") or {}
    tagged = (metadata.get("dist-tags") or {}).get("latest")

    if tagged:
        parsed = parse_semver(tagged)
        if parsed is not None and not parsed.is_prerelease:
            return LatestStableVersion(
                latest_version=tagged, published_at=times.get(tagged)
            )

    candidates = [info for info in list_versions(metadata) if not info.is_prerelease]
    if not candidates:
        logger.warning(
            "No stable version published",
            dist_tag_latest=tagged,
            versions=len(metadata.get("versions") or {}),
        )
        return LatestStableVersion()

    best = max(
        candidates,
        key=lambda info: (
            parse_semver(info.version),
            _parse_timestamp(info.published_at),
        ),
    )

    if tagged:
        logger.info(
            "dist-tags.latest is not a stable version, using latest stable",
            dist_tag_latest=tagged,
            resolved=best.version,
            candidates=len(candidates),
        )

    return LatestStableVersion(latest_version=best.version, published_at=best.published_at)


class NpmVersionResolver:
    """
    Resolves the latest stable published version of npm packages.

    A non-success registry response (missing or unpublished package) is a
    normal outcome and yields an empty result. Transport failures are raised as
    ``RegistryError`` so the caller's scheduler can retry.
    """

    def __init__(
        self, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> None:
        """
        Initialize the resolver.

        Args:
            settings: Application settings
            http_client: Optional shared HTTP client (mainly for tests)
        """
        self.registry_url = settings.npm_registry_url
        self.timeout = settings.request_timeout_seconds
        self._http_client = http_client

    def package_url(self, package_name: str) -> str:
        """Registry document URL; scoped names keep their ``@``."""
        return f"{self.registry_url}/{quote(package_name, safe='@')}"

    async def fetch_package_metadata(self, package_name: str) -> dict[str, Any] | None:
        """
        Fetch the registry document for a package.

        Args:
            package_name: npm package name

        Returns:
            Parsed metadata, or None when the registry answered non-success
        """
        url = self.package_url(package_name)
        headers = {"Accept": "application/json", "User-Agent": "bump-bot"}

        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    url, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                "Failed to reach npm registry", package=package_name, error=str(e)
            )
            raise RegistryError(
                f"Failed to fetch npm metadata for {package_name}: {e}",
                package_name=package_name,
            ) from e

        if not response.is_success:
            logger.info(
                "npm registry returned non-success status",
                package=package_name,
                status_code=response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(
                f"Malformed npm metadata for {package_name}",
                package_name=package_name,
            ) from e

        if not isinstance(data, dict):
            raise RegistryError(
                f"Unexpected npm metadata type for {package_name}: {type(data)}",
                package_name=package_name,
            )
        return data

    async def resolve_latest_stable_version(
        self, package_name: str
    ) -> LatestStableVersion:
        """
        Resolve the latest stable version of a package.

        Args:
            package_name: npm package name

        Returns:
            Latest stable version and its publish timestamp (both None when
            the package is unknown to the registry)
        """
        metadata = await self.fetch_package_metadata(package_name)
        if metadata is None:
            return LatestStableVersion()

        result = select_latest_stable(metadata)
        logger.debug(
            "Resolved latest stable version",
            package=package_name,
            latest_version=result.latest_version,
            published_at=result.published_at,
        )
        return result
