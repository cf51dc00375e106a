"""
ospolicy.core.exceptions - Custom Exception Hierarchy
=======================================================

This module defines a structured exception hierarchy for the sensor
deployment pipeline. Components raise and catch specific exception types
that carry contextual information instead of bare strings.

Exception Hierarchy:
    OSPolicyError (base)
        ├── ConfigurationError     - Missing or invalid configuration
        ├── CatalogError           - Distribution API failures
        │     └── ArtifactNotFoundError  - Filter matched no installers
        ├── StorageError           - Object store failures
        │     └── ObjectNotFoundError    - Sentinel: object/bucket key absent
        ├── TransferError          - Download/upload/verify failures
        ├── RolloutError           - Deployment command failures
        ├── PolicyError            - Policy document generation failures
        └── FanOutTimeoutError     - A fan-out group exceeded its deadline

Error Taxonomy:
    1. Configuration      → terminal, reported before any work starts
    2. Transient I/O      → retried by the RetryPolicy, then surfaced
    3. Idempotency        → "already exists" in storage or in the deployment
                            tool is success and is never raised
    4. Cancellation       → asyncio.CancelledError, always a failure for the
                            cancelled task, never wrapped

The ``ObjectNotFoundError`` sentinel is the one exception callers routinely
catch and swallow: a missing object means "safe to proceed" both for the
existence check and for partial-upload cleanup.

Usage:
    >>> from ospolicy.core.exceptions import TransferError
    >>> raise TransferError(
    ...     message="Upload of rhel/8 did not complete",
    ...     artifact="rhel-8",
    ...     error_code="UPLOAD_FAILED",
    ...     details={"bucket": "my-bucket"},
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


class OSPolicyError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code for programmatic handling.
            Convention: UPPER_SNAKE_CASE (e.g., "UPLOAD_FAILED"). The
            RetryPolicy decides retryability from this code.
        details: Arbitrary dict with additional debugging context.

    Example:
        >>> try:
        ...     await worker.run()
        ... except OSPolicyError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary (for structlog / reports)."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
class ConfigurationError(OSPolicyError):
    """Raised when required configuration is missing or invalid.

    Common Causes:
        - No storage bucket configured (MISSING_BUCKET)
        - No target zones configured (NO_ZONES)
        - Falcon API credentials missing (MISSING_CREDENTIALS)
        - Unknown Falcon cloud name (INVALID_CLOUD)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Catalog Errors
# =============================================================================
# The distribution API is treated as an opaque, flaky dependency: anything it
# raises is wrapped in CatalogError and considered transient.
# =============================================================================
class CatalogError(OSPolicyError):
    """Raised when the sensor distribution API call fails."""

    def __init__(
        self,
        message: str,
        error_code: str = "CATALOG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class ArtifactNotFoundError(CatalogError):
    """Raised when a catalog filter matches no installers.

    Attributes:
        filter: The catalog selector that produced zero results.
    """

    def __init__(
        self,
        filter: str,
        message: Optional[str] = None,
        error_code: str = "NO_ARTIFACTS_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["filter"] = filter

        super().__init__(
            message=message or f"no sensors found matching filter: {filter}",
            error_code=error_code,
            details=enriched_details,
        )

        self.filter = filter


# =============================================================================
# Storage Errors
# =============================================================================
class StorageError(OSPolicyError):
    """Raised when an object store operation fails."""

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class ObjectNotFoundError(StorageError):
    """Sentinel raised when a bucket/key does not exist.

    Distinguishable from every other storage failure so the existence check
    and the partial-upload cleanup can treat it as "safe to proceed".
    """

    def __init__(
        self,
        bucket: str,
        key: str,
        error_code: str = "OBJECT_NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["bucket"] = bucket
        enriched_details["key"] = key

        super().__init__(
            message=f"object gs://{bucket}/{key} does not exist",
            error_code=error_code,
            details=enriched_details,
        )

        self.bucket = bucket
        self.key = key


# =============================================================================
# Transfer Error
# =============================================================================
class TransferError(OSPolicyError):
    """Raised when staging a single artifact fails.

    Attributes:
        artifact: Name of the artifact spec being staged.

    Error Codes:
        TRANSFER_FAILED   - Download stream failed mid-way
        UPLOAD_FAILED     - Finalizing the storage object failed
        VERIFY_FAILED     - Object attributes could not be re-read
        SIZE_MISMATCH     - Stream produced more bytes than advertised
    """

    def __init__(
        self,
        message: str,
        artifact: str,
        error_code: str = "TRANSFER_FAILED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["artifact"] = artifact

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.artifact = artifact


# =============================================================================
# Rollout Error
# =============================================================================
class RolloutError(OSPolicyError):
    """Raised when creating a policy assignment in a zone fails.

    Attributes:
        zone: The target zone.
        stderr: Captured error output of the deployment command, if any.
    """

    def __init__(
        self,
        message: str,
        zone: str,
        stderr: str = "",
        error_code: str = "ROLLOUT_FAILED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["zone"] = zone

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.zone = zone
        self.stderr = stderr


class PolicyError(OSPolicyError):
    """Raised when the policy document cannot be generated or written."""

    def __init__(
        self,
        message: str,
        error_code: str = "POLICY_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class FanOutTimeoutError(OSPolicyError):
    """Raised when a fan-out group does not settle before its deadline."""

    def __init__(
        self,
        group: str,
        timeout_seconds: float,
        error_code: str = "FAN_OUT_TIMEOUT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["group"] = group
        enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=f"{group} did not finish within {timeout_seconds:g}s",
            error_code=error_code,
            details=enriched_details,
        )

        self.group = group
        self.timeout_seconds = timeout_seconds
