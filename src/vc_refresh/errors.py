"""
Error taxonomy for credential refresh.

Every failure surfaced by the refresh pipeline is a RefreshError carrying the
stage it was raised in, so callers can tell a policy rejection (the credential
may not be refreshed) from an operational failure (something broke).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vc_refresh.credential import RefreshStage


class RefreshError(Exception):
    """Base class for all refresh failures."""

    #: Policy rejections are expected outcomes, not faults.
    rejection = False

    def __init__(self, message: str, stage: RefreshStage | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"[{self.stage.value}] {self.message}"


class StructuralError(RefreshError):
    """Raised when a credential is missing required fields."""

    rejection = True


class EligibilityError(RefreshError):
    """Raised when a credential is not expired or not owned by the caller."""

    rejection = True


class ProviderError(RefreshError):
    """Raised when no update provider exists or the provider fails."""

    rejection = True


class IndexImpactError(RefreshError):
    """Raised when the proposed update does not touch the index commitment."""

    rejection = True


class ExternalServiceError(RefreshError):
    """Raised on transport failures or non-success responses."""


class CredentialNotFoundError(ExternalServiceError):
    """Raised when the issuer node reports the credential does not exist."""


class RefreshCancelledError(ExternalServiceError):
    """Raised when the caller cancels a refresh before an external call."""


class SerializationError(RefreshError):
    """Raised on malformed request/response bodies or credential status."""


class FieldNotSerializedError(SerializationError):
    """Raised when a field is not specified in serialization info."""


class InternalError(RefreshError):
    """Unexpected fault caught at the orchestrator boundary."""
