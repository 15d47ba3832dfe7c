"""Refresh eligibility checks: is the credential stale, and whose is it."""

from __future__ import annotations

from datetime import datetime, timezone

from vc_refresh.credential import Credential
from vc_refresh.errors import EligibilityError


def is_updatable(credential: Credential, now: datetime | None = None) -> None:
    """Check that a credential has expired and names an owner.

    Args:
        credential: The credential to check.
        now: Reference time. Defaults to the current UTC time.

    Raises:
        EligibilityError: If the credential is still valid or its subject
            has no usable id.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    if credential.expiration is None:
        raise EligibilityError("credential expiration is nil")
    if credential.expiration > now:
        raise EligibilityError("not expired")

    if credential.subject is None:
        raise EligibilityError("credential subject is nil")
    if "id" not in credential.subject:
        raise EligibilityError("id field missing in credentialSubject")

    subject_id = credential.subject["id"]
    if subject_id is None:
        raise EligibilityError("id field is nil in credentialSubject")
    if not isinstance(subject_id, str) or not subject_id.strip():
        raise EligibilityError("credential subject does not have a valid id")


def check_ownership(credential: Credential, owner: str) -> None:
    """Check that the credential subject is exactly the claimed owner.

    Raises:
        EligibilityError: If the subject id differs from owner.
    """
    if credential.subject is None:
        raise EligibilityError("credential subject is nil")
    if "id" not in credential.subject:
        raise EligibilityError("credential subject does not have an id field")
    subject_id = credential.subject["id"]
    if not isinstance(subject_id, str) or subject_id != owner:
        raise EligibilityError("not owner of the credential")
