"""
ospolicy.staging.paths - Version-Dependent Storage Paths
==========================================================

Newer sensor installers are identical across commercial clouds, so they are
staged under a shared, region-independent ("cloud-agnostic") path. Older
ones must keep the cloud-region segment in their path. This module decides
which applies and rewrites the configured prefix accordingly.

Cloud-agnostic rules:

    ┌──────────┬──────────┬──────────────────┬──────────────────────────┐
    │ platform │ minimum  │ excluded regions │ result at or above min   │
    ├──────────┼──────────┼──────────────────┼──────────────────────────┤
    │ linux    │ 7.28.0   │ -                │ agnostic                 │
    │ windows  │ 7.26.0   │ -                │ agnostic                 │
    │ windows  │ 7.19.0   │ us-gov-1         │ agnostic unless excluded │
    │ other    │ -        │ -                │ never agnostic           │
    └──────────┴──────────┴──────────────────┴──────────────────────────┘

    Rows are checked top to bottom per platform; the first row whose minimum
    the version meets decides.

Path rewrite:

    crowdstrike/falcon/us-2/linux/rhel/8  ──(agnostic)──>  crowdstrike/falcon/linux/rhel/8

Version parsing is tolerant: "v7.30", " 7.30 ", "7.30.0-rc1" are accepted.
Anything unparseable is treated as the most conservative case (not agnostic).
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional, Union

from ospolicy.core.enums import CloudRegion, Platform


# =============================================================================
# Tolerant Semantic Versions
# =============================================================================
_VERSION_RE = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


class Version(NamedTuple):
    """Parsed version. Tuple ordering compares major, minor, patch, then
    ``is_release`` so a prerelease sorts below its release."""

    major: int
    minor: int
    patch: int
    is_release: bool = True


def parse_version(text: str) -> Optional[Version]:
    """Parse ``text`` as a tolerant semantic version.

    Missing minor/patch components default to zero, a leading "v" and
    surrounding whitespace are ignored, build metadata is dropped.

    Returns:
        The parsed Version, or None if ``text`` is not a version.
    """
    match = _VERSION_RE.match(text.strip()) if isinstance(text, str) else None
    if match is None:
        return None
    return Version(
        major=int(match["major"]),
        minor=int(match["minor"] or 0),
        patch=int(match["patch"] or 0),
        is_release=match["prerelease"] is None,
    )


# =============================================================================
# Rule Table
# =============================================================================
class _AgnosticRule(NamedTuple):
    minimum: Version
    excluded_regions: frozenset[CloudRegion] = frozenset()


_AGNOSTIC_RULES: dict[Platform, tuple[_AgnosticRule, ...]] = {
    Platform.LINUX: (
        _AgnosticRule(Version(7, 28, 0)),
    ),
    Platform.WINDOWS: (
        _AgnosticRule(Version(7, 26, 0)),
        _AgnosticRule(Version(7, 19, 0), frozenset({CloudRegion.US_GOV_1})),
    ),
}


def should_use_cloud_agnostic_path(
    version: str,
    platform: Union[Platform, str],
    cloud_region: Union[CloudRegion, str],
) -> bool:
    """Decide whether an installer version is staged under the shared path.

    Pure function: no I/O, never raises for bad input.

    Args:
        version: Installer version as reported by the catalog.
        platform: Installer platform.
        cloud_region: Falcon cloud the installer was downloaded from.

    Returns:
        True if the cloud-region segment should be dropped from the path.

    Example:
        >>> should_use_cloud_agnostic_path("7.20.11", "windows", "us-gov-1")
        False
        >>> should_use_cloud_agnostic_path("7.20.11", "windows", "us-2")
        True
    """
    parsed = parse_version(version)
    if parsed is None:
        return False

    try:
        rules = _AGNOSTIC_RULES.get(Platform(platform), ())
    except ValueError:
        return False

    try:
        region: Optional[CloudRegion] = CloudRegion(cloud_region)
    except ValueError:
        region = None

    for rule in rules:
        if parsed >= rule.minimum:
            return region not in rule.excluded_regions
    return False


# =============================================================================
# Path Construction
# =============================================================================
def strip_path_segment(path: str, segment: str) -> str:
    """Remove every "/"-separated segment of ``path`` equal to ``segment``.

    Matching is exact and the order of the remaining segments is kept, so
    a path without the segment comes back unchanged.

    Example:
        >>> strip_path_segment("crowdstrike/falcon/us-2/windows", "us-2")
        'crowdstrike/falcon/windows'
    """
    parts = path.split("/")
    kept = [part for part in parts if part != segment]
    if len(kept) == len(parts):
        return path
    return "/".join(kept)


def resolve_bucket_path(
    bucket_prefix: str,
    version: str,
    platform: Union[Platform, str],
    cloud_region: Union[CloudRegion, str],
) -> str:
    """Destination prefix for an installer version.

    The configured prefix with the cloud-region segment removed when the
    version is cloud-agnostic, the prefix unchanged otherwise.
    """
    if should_use_cloud_agnostic_path(version, platform, cloud_region):
        region_segment = cloud_region.value if isinstance(cloud_region, CloudRegion) else cloud_region
        return strip_path_segment(bucket_prefix, region_segment)
    return bucket_prefix


def object_key(bucket_path: str, version: str, file_name: str) -> str:
    """Final object key: ``<bucket_path>/<version>/<file_name>``."""
    parts = [bucket_path.strip("/"), version, file_name]
    return "/".join(part for part in parts if part)
