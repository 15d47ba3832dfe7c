"""
Credential data model.

Parses the issuer node's W3C credential document into a Credential and
builds the UpdateRequest sent back when a refreshed credential is issued.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from vc_refresh.errors import SerializationError

# Credential subjects are schema-flexible: values are plain JSON values
# (str, int, float, bool, None, list or nested dict).
Subject = dict[str, Any]


class RefreshStage(Enum):
    """Pipeline states, in the order a refresh passes through them."""

    FETCHED = "fetched"
    STRUCTURALLY_VALID = "structurally_valid"
    ELIGIBLE = "eligible"
    OWNED = "owned"
    TYPE_RESOLVED = "type_resolved"
    PROVIDER_RESOLVED = "provider_resolved"
    FIELDS_UPDATED = "fields_updated"
    IMPACT_CONFIRMED = "impact_confirmed"
    NONCE_EXTRACTED = "nonce_extracted"
    REISSUED = "reissued"
    REFETCHED = "refetched"


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, treating naive values as UTC.

    Raises:
        SerializationError: If the value is not a valid timestamp string.
    """
    if not isinstance(value, str):
        raise SerializationError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise SerializationError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Credential:
    """A Verifiable Credential as stored by the issuer node."""

    id: str | None
    issuer: str | None
    type: list[str] | None
    expiration: datetime | None
    subject: Subject | None
    status: Any = None
    schema_id: str = ""
    context: list[str] = field(default_factory=list)
    refresh_service: dict[str, Any] | None = None
    display_method: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Create a Credential from its JSON document.

        Missing fields are left empty; structure_errors() reports them.

        Raises:
            SerializationError: If the document is not an object or a
                present field has the wrong shape.
        """
        if not isinstance(data, dict):
            raise SerializationError("Credential document is not a JSON object")

        issuer = data.get("issuer")
        if isinstance(issuer, dict):
            issuer = issuer.get("id")

        cred_type = data.get("type")
        if isinstance(cred_type, str):
            cred_type = [cred_type]
        elif cred_type is not None and not isinstance(cred_type, list):
            raise SerializationError(f"Invalid credential type: {cred_type!r}")

        expiration = None
        if data.get("expirationDate") is not None:
            expiration = parse_timestamp(data["expirationDate"])

        subject = data.get("credentialSubject")
        if subject is not None and not isinstance(subject, dict):
            raise SerializationError("credentialSubject is not a JSON object")

        schema = data.get("credentialSchema") or {}
        schema_id = schema.get("id", "") if isinstance(schema, dict) else ""

        context = data.get("@context") or []
        if not isinstance(context, list):
            context = [context]

        return cls(
            id=data.get("id"),
            issuer=issuer,
            type=cred_type,
            expiration=expiration,
            subject=subject,
            status=data.get("credentialStatus"),
            schema_id=schema_id or "",
            # Inline context objects carry no URI to resolve
            context=[c for c in context if isinstance(c, str)],
            refresh_service=data.get("refreshService"),
            display_method=data.get("displayMethod"),
            raw=data,
        )

    def structure_errors(self) -> list[str]:
        """Validate the fields every refresh requires.

        Returns:
            List of validation errors (empty if valid).
        """
        errors: list[str] = []
        if not self.issuer:
            errors.append("credential issuer is empty")
        if not self.id:
            errors.append("credential ID is empty")
        if self.type is None:
            errors.append("credential type is nil")
        if self.expiration is None:
            errors.append("credential expiration is nil")
        if self.subject is None:
            errors.append("credential subject is nil")
        return errors


@dataclass
class UpdateRequest:
    """Request body for issuing the refreshed credential."""

    credential_schema: str
    type: str
    credential_subject: Subject
    expiration: int
    rev_nonce: int | None = None
    refresh_service: dict[str, Any] | None = None
    display_method: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the issuer node wire shape, omitting absent fields."""
        body: dict[str, Any] = {
            "credentialSchema": self.credential_schema,
            "type": self.type,
            "credentialSubject": self.credential_subject,
            "expiration": self.expiration,
        }
        if self.refresh_service is not None:
            body["refreshService"] = self.refresh_service
        if self.rev_nonce is not None:
            body["revNonce"] = self.rev_nonce
        if self.display_method is not None:
            body["displayMethod"] = self.display_method
        return body
