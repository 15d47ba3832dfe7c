"""
iden3 claim layout oracle.

An iden3 claim commits a credential subject either as a single merklized
root (in an index or a value slot) or, for non-merklized schemas, field by
field into fixed data slots named by the "iden3_serialization" entry of the
type's JSON-LD context definition:

    iden3:v1:slotIndexA=birthday&slotIndexB=documentType&slotValueA=...

Slot numbers follow the claim layout: index data slots are 2 and 3, value
data slots are 6 and 7.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from vc_refresh.credential import Credential
from vc_refresh.errors import FieldNotSerializedError, SerializationError

SERIALIZATION_PREFIX = "iden3:v1:"

SLOT_NUMBERS = {
    "slotIndexA": 2,
    "slotIndexB": 3,
    "slotValueA": 6,
    "slotValueB": 7,
}

# Only valid for SERIALIZATION_PREFIX; parse_serialization rejects other versions.
INDEX_SLOTS = frozenset({2, 3})


class MerklizedRootPosition(Enum):
    """Where a credential's subject is committed in its claim."""

    INDEX = "index"
    VALUE = "value"
    NONE = "none"


class ClaimParser(Protocol):
    """Claim layout oracle consulted by the index impact analysis."""

    def merklized_position(
        self, credential: Credential, context_document: dict[str, Any]
    ) -> MerklizedRootPosition: ...

    def field_slot_index(
        self, field: str, type_name: str, context_document: dict[str, Any]
    ) -> int: ...


def find_type_definition(
    context_document: dict[str, Any], type_name: str
) -> dict[str, Any] | None:
    """Find the term definition for type_name in an aggregated context."""
    for entry in context_document.get("@context", []):
        if not isinstance(entry, dict):
            continue
        definition = entry.get(type_name)
        if isinstance(definition, dict):
            return definition
    return None


def serialization_info(definition: dict[str, Any]) -> str | None:
    """Return the iden3_serialization string of a type definition, if any."""
    scoped = definition.get("@context")
    if not isinstance(scoped, dict):
        return None
    info = scoped.get("iden3_serialization")
    return info if isinstance(info, str) else None


def parse_serialization(info: str) -> dict[str, int]:
    """Parse serialization info into a field -> slot number mapping.

    Raises:
        SerializationError: If the version is unsupported or an entry is
            malformed.
    """
    if not info.startswith(SERIALIZATION_PREFIX):
        raise SerializationError(f"Unsupported serialization info: {info!r}")

    slots: dict[str, int] = {}
    for part in info[len(SERIALIZATION_PREFIX):].split("&"):
        if not part:
            continue
        slot_name, _, field = part.partition("=")
        if slot_name not in SLOT_NUMBERS:
            raise SerializationError(f"Unknown slot name in serialization info: {slot_name!r}")
        if not field:
            raise SerializationError(f"Empty field name for slot {slot_name}")
        slots[field] = SLOT_NUMBERS[slot_name]
    return slots


class SerializationClaimParser:
    """Claim oracle backed by iden3 serialization info in JSON-LD contexts."""

    def __init__(
        self,
        merklized_root_position: MerklizedRootPosition = MerklizedRootPosition.INDEX,
    ) -> None:
        """Initialize the parser.

        Args:
            merklized_root_position: Root position for merklized credentials.
                Must be INDEX or VALUE.
        """
        if merklized_root_position == MerklizedRootPosition.NONE:
            raise ValueError("merklized_root_position must be INDEX or VALUE")
        self.merklized_root_position = merklized_root_position

    def merklized_position(
        self, credential: Credential, context_document: dict[str, Any]
    ) -> MerklizedRootPosition:
        """Classify how the credential subject is committed.

        A subject type with serialization info is non-merklized (NONE);
        any other credential is merklized at the configured position.
        """
        subject = credential.subject or {}
        type_name = subject.get("type")
        if isinstance(type_name, str):
            definition = find_type_definition(context_document, type_name)
            if definition is not None and serialization_info(definition) is not None:
                return MerklizedRootPosition.NONE
        return self.merklized_root_position

    def field_slot_index(
        self, field: str, type_name: str, context_document: dict[str, Any]
    ) -> int:
        """Resolve the claim slot a field is serialized into.

        Raises:
            FieldNotSerializedError: If the field is not specified in the
                type's serialization info.
            SerializationError: If the type or its serialization info is
                missing or malformed.
        """
        definition = find_type_definition(context_document, type_name)
        if definition is None:
            raise SerializationError(f"Type '{type_name}' not found in context")

        info = serialization_info(definition)
        if info is None:
            raise SerializationError(f"Serialization info is not set for type '{type_name}'")

        slots = parse_serialization(info)
        if field not in slots:
            raise FieldNotSerializedError(
                f"Field '{field}' not specified in serialization info"
            )
        return slots[field]
