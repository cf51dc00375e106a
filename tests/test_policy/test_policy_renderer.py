"""
Tests for ospolicy.policy.renderer
====================================

What's Being Tested:
    - The OS policy assignment structure (policies, filters, rollout)
    - Linux package and Windows installer resource groups
    - YAML rendering and writing to disk
"""

import pytest
import yaml

from ospolicy.core.exceptions import PolicyError
from ospolicy.policy.document import LabelSet, OsResource, PolicyDocument
from ospolicy.policy.renderer import OS_POLICY_ID, render_policy, to_assignment, write_policy


def _document(**overrides) -> PolicyDocument:
    """A document with one RHEL 8 and one Windows resource."""
    defaults = {
        "cid": "CID-1",
        "linux_install_params": "--cid=CID-1",
        "windows_install_params": "'/install', '/quiet', '/norestart', 'CID=CID-1'",
        "resources": {
            "rhel8*": OsResource(bucket="sensors", object="linux/rhel/8/f.rpm", generation=11, package="rpm"),
            "windows": OsResource(bucket="sensors", object="windows/w.exe", generation=12, package="exe"),
        },
    }
    defaults.update(overrides)
    return PolicyDocument(**defaults)


class TestToAssignment:
    """Tests for the assignment structure."""

    def test_policy_header_and_rollout(self) -> None:
        """One enforced policy and a full-budget rollout."""
        assignment = to_assignment(_document())
        policy = assignment["osPolicies"][0]

        assert policy["id"] == OS_POLICY_ID
        assert policy["mode"] == "ENFORCEMENT"
        assert policy["allowNoResourceGroupMatch"] is True
        assert assignment["rollout"] == {
            "disruptionBudget": {"percent": 100},
            "minWaitDuration": "60s",
        }

    def test_linux_group(self) -> None:
        """RPM packages are installed from the pinned object, then configured."""
        group = to_assignment(_document())["osPolicies"][0]["resourceGroups"][0]

        assert group["inventoryFilters"] == [{"osShortName": "rhel", "osVersion": "8*"}]
        pkg = group["resources"][0]["pkg"]
        assert pkg["desiredState"] == "INSTALLED"
        assert pkg["rpm"]["source"]["gcs"] == {
            "bucket": "sensors",
            "object": "linux/rhel/8/f.rpm",
            "generation": 11,
        }
        assert "--cid=CID-1" in group["resources"][1]["exec"]["enforce"]["script"]

    def test_windows_group(self) -> None:
        """Windows copies the installer and runs it with the CID."""
        group = to_assignment(_document())["osPolicies"][0]["resourceGroups"][1]

        assert group["inventoryFilters"] == [{"osShortName": "windows"}]
        assert group["resources"][0]["file"]["file"]["gcs"]["generation"] == 12
        enforce = group["resources"][1]["exec"]["enforce"]
        assert enforce["interpreter"] == "POWERSHELL"
        assert "'CID=CID-1'" in enforce["script"]

    def test_all_instances_without_labels(self) -> None:
        """No labels → every instance."""
        assert to_assignment(_document())["instanceFilter"] == {"all": True}

    def test_label_filters(self) -> None:
        """Inclusion and exclusion labels become label maps."""
        doc = _document(
            inclusion_labels=[LabelSet(label="env", value="prod")],
            exclusion_labels=[LabelSet(label="skip")],
        )
        assert to_assignment(doc)["instanceFilter"] == {
            "inclusionLabels": [{"labels": {"env": "prod"}}],
            "exclusionLabels": [{"labels": {"skip": ""}}],
        }


class TestRenderAndWrite:
    """Tests for YAML output."""

    def test_render_round_trips(self) -> None:
        """The rendered YAML loads back to the assignment structure."""
        doc = _document()
        assert yaml.safe_load(render_policy(doc)) == to_assignment(doc)

    def test_empty_document_rejected(self) -> None:
        """A policy with no installers is an error."""
        with pytest.raises(PolicyError) as exc_info:
            render_policy(_document(resources={}))
        assert exc_info.value.error_code == "EMPTY_POLICY"

    def test_write_creates_parents(self, tmp_path) -> None:
        """write_policy() creates missing directories."""
        target = tmp_path / "out" / "nested" / "template.yaml"
        assert write_policy(_document(), target) == target
        assert yaml.safe_load(target.read_text())["osPolicies"][0]["id"] == OS_POLICY_ID

    def test_write_failure(self, tmp_path) -> None:
        """Writing over a directory raises POLICY_WRITE_FAILED."""
        with pytest.raises(PolicyError) as exc_info:
            write_policy(_document(), tmp_path)
        assert exc_info.value.error_code == "POLICY_WRITE_FAILED"
