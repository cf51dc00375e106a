"""
ospolicy.core.reporting - User-Facing Error Reports
=====================================================

When a run aborts, the user gets the explanation, the underlying error and
a link that opens a pre-filled support issue. The report reminds the user
to scrub sensitive values before submitting it.
"""

from __future__ import annotations

from urllib.parse import urlencode

from ospolicy.core.exceptions import OSPolicyError


ISSUE_REPOSITORY_URL = "https://github.com/crowdstrike/gcp-os-policy"


def issue_url(body: str) -> str:
    """URL of a new issue with ``body`` pre-filled."""
    return f"{ISSUE_REPOSITORY_URL}/issues/new?{urlencode({'body': body})}"


def format_error_report(explanation: str, error: BaseException) -> str:
    """Build the text shown to the user when a run fails.

    Args:
        explanation: What the pipeline was doing ("An error occurred while
            creating a GCP OS Policy Assignment").
        error: The surfaced error.

    Returns:
        Multi-line report ending with the pre-filled issue URL.

    Example:
        >>> print(format_error_report("Unable to grab cid.", err))
    """
    message = error.message if isinstance(error, OSPolicyError) else str(error)
    if isinstance(error, OSPolicyError) and error.error_code:
        detail = f"[{error.error_code}] {message}"
    else:
        detail = message

    lines = [
        explanation,
        "",
        f" x {detail}",
        "If you are unsure the cause of the error you can open a github issue for help."
        " Below is a link with the error prefilled.",
        "",
        " !! IMPORTANT: make sure to remove any sensitive information",
        "",
        issue_url(f"{explanation}\n\n ```\n{detail}\n```"),
    ]
    return "\n".join(lines)
