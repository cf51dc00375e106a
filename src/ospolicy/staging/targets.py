"""
ospolicy.staging.targets - Default Installer Families
=======================================================

The set of installer families staged by a default run, one ArtifactSpec
per supported operating system. Filters are FQL selectors against the
sensor catalog; ``os_short_name`` + ``os_version`` are the inventory values
the policy document targets.

Every prefix embeds the cloud region segment. Versions that qualify for the
cloud-agnostic layout have it stripped at staging time (see paths.py).
"""

from __future__ import annotations

from typing import NamedTuple

from ospolicy.core.enums import CloudRegion, Platform
from ospolicy.core.exceptions import ConfigurationError
from ospolicy.core.models import ArtifactSpec


BUCKET_ROOT = "crowdstrike/falcon"


class _Target(NamedTuple):
    name: str
    filter: str
    os_short_name: str
    os_version: str
    platform: Platform
    path: str


DEFAULT_TARGETS: tuple[_Target, ...] = (
    _Target("rhel-7", "os:'*RHEL*'+os_version:'7'+platform:'linux'", "rhel", "7*", Platform.LINUX, "linux/rhel/7"),
    _Target("rhel-8", "os:'*RHEL*'+os_version:'8'+platform:'linux'", "rhel", "8*", Platform.LINUX, "linux/rhel/8"),
    _Target("rhel-9", "os:'*RHEL*'+os_version:'9'+platform:'linux'", "rhel", "9*", Platform.LINUX, "linux/rhel/9"),
    _Target("centos-7", "os:'*CentOS*'+os_version:'7'+platform:'linux'", "centos", "7*", Platform.LINUX, "linux/centos/7"),
    _Target("centos-8", "os:'*CentOS*'+os_version:'8'+platform:'linux'", "centos", "8*", Platform.LINUX, "linux/centos/8"),
    _Target("sles-12", "os:'*SLES*'+os_version:'12'+platform:'linux'", "sles", "12*", Platform.LINUX, "linux/sles/12"),
    _Target("sles-15", "os:'*SLES*'+os_version:'15'+platform:'linux'", "sles", "15*", Platform.LINUX, "linux/sles/15"),
    _Target(
        "ubuntu",
        "os:'*Ubuntu*'+os_version:'*16/18/20/22*'+os_version:!'*arm64*'"
        "+os_version:!~'zLinux'+platform:'linux'",
        "ubuntu",
        "",
        Platform.LINUX,
        "linux/ubuntu",
    ),
    _Target(
        "debian",
        "os:'Debian'+os_version:'*9/10/11*'+os_version:!'*arm64*'+platform:'linux'",
        "debian",
        "",
        Platform.LINUX,
        "linux/debian",
    ),
    _Target("windows", "os:'Windows'+platform:'windows'", "windows", "", Platform.WINDOWS, "windows"),
)


def default_artifact_specs(cloud_region: CloudRegion) -> list[ArtifactSpec]:
    """Build the default ArtifactSpecs for ``cloud_region``.

    Args:
        cloud_region: Concrete Falcon cloud the installers come from.

    Raises:
        ConfigurationError: If ``cloud_region`` is AUTODISCOVER. Resolve the
            region through the catalog client first.

    Example:
        >>> specs = default_artifact_specs(CloudRegion.US_2)
        >>> specs[1].bucket_prefix
        'crowdstrike/falcon/us-2/linux/rhel/8'
    """
    if cloud_region is CloudRegion.AUTODISCOVER:
        raise ConfigurationError(
            message="Cloud region must be resolved before building artifact specs",
            error_code="INVALID_CLOUD",
        )

    return [
        ArtifactSpec(
            name=target.name,
            filter=target.filter,
            os_short_name=target.os_short_name,
            os_version=target.os_version,
            platform=target.platform,
            cloud_region=cloud_region,
            bucket_prefix=f"{BUCKET_ROOT}/{cloud_region.value}/{target.path}",
        )
        for target in DEFAULT_TARGETS
    ]
