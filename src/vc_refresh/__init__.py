"""
VC Refresh - refreshes expired Verifiable Credentials.

Supports:
- iden3 issuer node credential fetch and reissuance
- Configurable HTTP attribute update providers
- Index impact analysis for merklized and non-merklized (iden3 serialization) claims
- Best-effort JSON-LD context aggregation
"""

from vc_refresh.credential import Credential, RefreshStage, UpdateRequest
from vc_refresh.errors import (
    EligibilityError,
    ExternalServiceError,
    IndexImpactError,
    InternalError,
    ProviderError,
    RefreshError,
    SerializationError,
    StructuralError,
)
from vc_refresh.impact import ImpactVerdict, IndexImpactAnalyzer
from vc_refresh.claims import MerklizedRootPosition, SerializationClaimParser
from vc_refresh.context import ContextAggregator, HTTPDocumentLoader
from vc_refresh.issuer import IssuerClient
from vc_refresh.providers import HTTPProvider, ProviderRegistry
from vc_refresh.refresh import (
    RefreshOrchestrator,
    RefreshResult,
    RefreshStatus,
    refresh_credential,
)

__version__ = "0.1.0"

__all__ = [
    "Credential",
    "UpdateRequest",
    "RefreshStage",
    "RefreshError",
    "StructuralError",
    "EligibilityError",
    "ProviderError",
    "IndexImpactError",
    "ExternalServiceError",
    "SerializationError",
    "InternalError",
    "ImpactVerdict",
    "IndexImpactAnalyzer",
    "MerklizedRootPosition",
    "SerializationClaimParser",
    "ContextAggregator",
    "HTTPDocumentLoader",
    "IssuerClient",
    "HTTPProvider",
    "ProviderRegistry",
    "RefreshOrchestrator",
    "RefreshResult",
    "RefreshStatus",
    "refresh_credential",
]
