"""
Tests for ospolicy.core.reporting and ospolicy.core.logging
=============================================================

The error report is what a user sees when a run aborts: the explanation,
the error, a redaction reminder and a pre-filled issue link.
"""

from urllib.parse import parse_qs, urlparse

import pytest
import structlog

from ospolicy.core.exceptions import RolloutError
from ospolicy.core.logging import configure_logging
from ospolicy.core.reporting import ISSUE_REPOSITORY_URL, format_error_report, issue_url


class TestIssueUrl:
    """Tests for issue_url()."""

    def test_body_is_url_encoded(self) -> None:
        """The body round-trips through the query string."""
        url = issue_url("line one\nline & two")
        parsed = urlparse(url)

        assert url.startswith(f"{ISSUE_REPOSITORY_URL}/issues/new?")
        assert parse_qs(parsed.query)["body"] == ["line one\nline & two"]


class TestFormatErrorReport:
    """Tests for format_error_report()."""

    def test_pipeline_error_includes_code(self) -> None:
        """OSPolicyErrors are shown with their error code."""
        error = RolloutError("permission denied", zone="us-central1-a")
        report = format_error_report("An error occurred while creating a GCP OS Policy Assignment", error)
        lines = report.splitlines()

        assert lines[0] == "An error occurred while creating a GCP OS Policy Assignment"
        assert lines[2] == " x [ROLLOUT_FAILED] permission denied"
        assert " !! IMPORTANT: make sure to remove any sensitive information" in lines
        assert lines[-1].startswith(ISSUE_REPOSITORY_URL)

    def test_plain_exception(self) -> None:
        """Other exceptions are shown by their message alone."""
        report = format_error_report("Unexpected error while grabbing cid.", RuntimeError("boom"))
        assert " x boom" in report.splitlines()

    def test_issue_body_contains_explanation_and_error(self) -> None:
        """The pre-filled issue repeats explanation and error."""
        report = format_error_report("Staging failed.", RuntimeError("disk full"))
        body = parse_qs(urlparse(report.splitlines()[-1]).query)["body"][0]
        assert body.startswith("Staging failed.")
        assert "disk full" in body


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def teardown_method(self) -> None:
        structlog.reset_defaults()

    def test_json_output(self, capsys) -> None:
        """JSON mode renders one JSON object per event on stderr."""
        configure_logging("DEBUG", fmt="json")
        structlog.get_logger().info("staging_progress", completed=1)

        err = capsys.readouterr().err
        assert '"event": "staging_progress"' in err
        assert '"completed": 1' in err

    def test_level_filtering(self, capsys) -> None:
        """Events below the configured level are dropped."""
        configure_logging("WARNING", fmt="json")
        structlog.get_logger().info("quiet_event")

        assert "quiet_event" not in capsys.readouterr().err

    def test_unknown_level_rejected(self) -> None:
        """Unknown level names raise ValueError."""
        with pytest.raises(ValueError):
            configure_logging("LOUD")
