"""
Index impact analysis.

Only changes that land in a claim's index slots alter the credential's
index commitment. A refresh whose changes are confined to value slots would
produce a credential indistinguishable to verifiers, so it is refused.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from vc_refresh.claims import INDEX_SLOTS, ClaimParser, MerklizedRootPosition
from vc_refresh.context import ContextAggregator
from vc_refresh.credential import Credential, Subject
from vc_refresh.errors import FieldNotSerializedError

logger = logging.getLogger(__name__)

RESERVED_FIELDS = frozenset({"id", "type"})


class ImpactVerdict(Enum):
    """Outcome of the index impact analysis."""

    UPDATED = "updated"
    NOT_UPDATED = "not_updated"


def values_differ(old: Any, new: Any) -> bool:
    """Compare two JSON values.

    Booleans never equal numbers, while 1 and 1.0 are the same number.
    """
    if isinstance(old, bool) or isinstance(new, bool):
        return type(old) is not type(new) or old != new
    if isinstance(old, (int, float)) and isinstance(new, (int, float)):
        return old != new
    if type(old) is not type(new):
        return True
    if isinstance(old, dict):
        if old.keys() != new.keys():
            return True
        return any(values_differ(old[k], new[k]) for k in old)
    if isinstance(old, list):
        if len(old) != len(new):
            return True
        return any(values_differ(a, b) for a, b in zip(old, new))
    return old != new


class IndexImpactAnalyzer:
    """Decides whether proposed field changes touch the index commitment."""

    def __init__(
        self,
        claim_parser: ClaimParser,
        aggregator: ContextAggregator | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            claim_parser: Claim layout oracle.
            aggregator: Used to build the context document when decide()
                is not given one.
        """
        self.claim_parser = claim_parser
        self.aggregator = aggregator

    def decide(
        self,
        credential: Credential,
        old_subject: Subject,
        new_subject: Subject,
        context_document: dict[str, Any] | None = None,
    ) -> ImpactVerdict:
        """Decide whether new_subject changes an index-committed field.

        Args:
            credential: The credential being refreshed.
            old_subject: Current subject values.
            new_subject: Proposed field values (only changed keys need be present).
            context_document: Aggregated JSON-LD context of the credential.

        Returns:
            UPDATED if the change is consequential, NOT_UPDATED otherwise.

        Raises:
            SerializationError: If a field's slot cannot be resolved for a
                reason other than missing serialization info.
        """
        if context_document is None:
            if self.aggregator is None:
                context_document = {"@context": []}
            else:
                context_document = self.aggregator.aggregate(credential.context)

        position = self.claim_parser.merklized_position(credential, context_document)
        logger.debug("Credential %s merklized root position: %s", credential.id, position.value)

        if position == MerklizedRootPosition.INDEX:
            return ImpactVerdict.UPDATED
        if position == MerklizedRootPosition.VALUE:
            return ImpactVerdict.NOT_UPDATED

        for field, old_value in old_subject.items():
            if field in RESERVED_FIELDS:
                continue

            type_name = old_subject.get("type")
            if not isinstance(type_name, str):
                logger.warning("Subject type is missing or not a string, skipping field %s", field)
                continue

            try:
                slot = self.claim_parser.field_slot_index(field, type_name, context_document)
            except FieldNotSerializedError:
                logger.info("Field %s is not in serialization info, treating as updated", field)
                return ImpactVerdict.UPDATED

            if field not in new_subject:
                logger.warning("Field %s not found in new values", field)
                continue

            if slot in INDEX_SLOTS and values_differ(old_value, new_subject[field]):
                logger.info("Index field %s (slot %d) changed", field, slot)
                return ImpactVerdict.UPDATED

        return ImpactVerdict.NOT_UPDATED
