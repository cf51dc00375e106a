"""
Tests for ospolicy.staging.targets
====================================

What's Being Tested:
    - Region segment embedded in every default bucket prefix
    - Platform and OS inventory values per family
    - AUTODISCOVER rejected until the region is resolved
"""

import pytest

from ospolicy.core.enums import CloudRegion, Platform
from ospolicy.core.exceptions import ConfigurationError
from ospolicy.staging.targets import DEFAULT_TARGETS, default_artifact_specs


class TestDefaultArtifactSpecs:
    """Tests for default_artifact_specs()."""

    def test_one_spec_per_family(self) -> None:
        """Every default family yields a spec with a unique name."""
        specs = default_artifact_specs(CloudRegion.US_1)
        assert len(specs) == len(DEFAULT_TARGETS)
        assert len({spec.name for spec in specs}) == len(specs)

    def test_region_in_prefix(self) -> None:
        """Prefixes carry the region segment."""
        for spec in default_artifact_specs(CloudRegion.US_GOV_1):
            assert spec.bucket_prefix.startswith("crowdstrike/falcon/us-gov-1/")
            assert spec.cloud_region is CloudRegion.US_GOV_1

    def test_windows_family(self) -> None:
        """The windows family targets the windows platform without a version."""
        windows = {spec.name: spec for spec in default_artifact_specs(CloudRegion.EU_1)}["windows"]
        assert windows.platform is Platform.WINDOWS
        assert windows.os_version == ""
        assert windows.bucket_prefix == "crowdstrike/falcon/eu-1/windows"

    def test_rhel8_family(self) -> None:
        """RHEL 8 installers are selected by OS and major version."""
        rhel8 = {spec.name: spec for spec in default_artifact_specs(CloudRegion.US_2)}["rhel-8"]
        assert rhel8.platform is Platform.LINUX
        assert rhel8.os_short_name == "rhel"
        assert rhel8.os_version == "8*"
        assert "os_version:'8'" in rhel8.filter

    def test_autodiscover_rejected(self) -> None:
        """An unresolved region raises INVALID_CLOUD."""
        with pytest.raises(ConfigurationError) as exc_info:
            default_artifact_specs(CloudRegion.AUTODISCOVER)
        assert exc_info.value.error_code == "INVALID_CLOUD"
