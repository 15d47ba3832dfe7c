"""Shared fixtures for VC Refresh tests."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from vc_refresh.context import DocumentLoadError, RemoteDocument
from vc_refresh.credential import Credential, UpdateRequest
from vc_refresh.errors import CredentialNotFoundError
from vc_refresh.providers import ProviderSettings

ISSUER_DID = "did:iden3:polygon:amoy:xCRp75DgAdS63W65fmXHz6p9DwdonuRU9e46DifhX"
OWNER_DID = "did:iden3:polygon:amoy:x7Z95VkUuyo6mqraJw2VGwCfqTzdqhM1RVjRHzcpK"
CREDENTIAL_ID = "urn:uuid:8edd8112-8d3d-11ef-8b25-0242ac120002"
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

KYC_CONTEXT_URL = "https://example.com/schemas/kyc-nonmerklized.jsonld"
W3C_CONTEXT_URL = "https://www.w3.org/2018/credentials/v1"
IDEN3_CONTEXT_URL = "https://schema.iden3.io/core/jsonld/iden3proofs.jsonld"


def kyc_context_document(
    serialization: str | None = "iden3:v1:slotIndexA=birthday&slotIndexB=documentType&slotValueA=country",
) -> dict[str, Any]:
    type_context: dict[str, Any] = {
        "@propagate": True,
        "@protected": True,
        "birthday": {"@id": "https://example.com/kyc#birthday", "@type": "xsd:integer"},
        "documentType": {"@id": "https://example.com/kyc#documentType", "@type": "xsd:integer"},
        "country": {"@id": "https://example.com/kyc#country", "@type": "xsd:string"},
    }
    if serialization is not None:
        type_context["iden3_serialization"] = serialization
    return {
        "@context": [
            {
                "@protected": True,
                "@version": 1.1,
                "id": "@id",
                "type": "@type",
                "KYCAgeCredential": {
                    "@id": "https://example.com/kyc#KYCAgeCredential",
                    "@context": type_context,
                },
            }
        ]
    }


class FakeDocumentLoader:
    """In-memory document loader recording every load."""

    def __init__(self, documents: dict[str, Any]) -> None:
        self.documents = documents
        self.loaded: list[str] = []

    def load(self, uri: str) -> RemoteDocument:
        self.loaded.append(uri)
        if uri not in self.documents:
            raise DocumentLoadError(f"HTTP error loading {uri}: 404")
        return RemoteDocument(document_url=uri, document=self.documents[uri])


class FakeStore:
    """In-memory issuer node."""

    def __init__(self, documents: dict[str, dict[str, Any]]) -> None:
        self.documents = documents
        self.fetched: list[str] = []
        self.created: list[UpdateRequest] = []

    def fetch(self, issuer_did: str, credential_id: str) -> Credential:
        self.fetched.append(credential_id)
        if credential_id not in self.documents:
            raise CredentialNotFoundError(f"Credential '{credential_id}' not found")
        return Credential.from_dict(copy.deepcopy(self.documents[credential_id]))

    def create(self, issuer_did: str, request: UpdateRequest) -> str:
        self.created.append(request)
        new_id = f"urn:uuid:refreshed-{len(self.created)}"
        document = copy.deepcopy(self.documents[CREDENTIAL_ID])
        document["id"] = new_id
        document["credentialSubject"] = request.credential_subject
        document["expirationDate"] = datetime.fromtimestamp(
            request.expiration, tz=timezone.utc
        ).isoformat()
        self.documents[new_id] = document
        return new_id


class StaticProvider:
    """Provider returning fixed fields."""

    def __init__(self, fields: Any, time_expiration: timedelta = timedelta()) -> None:
        self.fields = fields
        self.settings = ProviderSettings(time_expiration=time_expiration)
        self.calls: list[dict[str, Any]] = []

    def provide(self, subject: dict[str, Any]) -> Any:
        self.calls.append(subject)
        return self.fields


def make_credential_document(
    expiration: datetime = NOW - timedelta(days=1),
    subject: dict[str, Any] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    document: dict[str, Any] = {
        "id": CREDENTIAL_ID,
        "@context": [W3C_CONTEXT_URL, IDEN3_CONTEXT_URL, KYC_CONTEXT_URL],
        "type": ["VerifiableCredential", "KYCAgeCredential"],
        "issuer": ISSUER_DID,
        "issuanceDate": (expiration - timedelta(days=365)).isoformat(),
        "expirationDate": expiration.isoformat(),
        "credentialSubject": subject if subject is not None else {
            "id": OWNER_DID,
            "type": "KYCAgeCredential",
            "birthday": 19960424,
            "documentType": 2,
            "country": "NL",
        },
        "credentialStatus": {
            "id": "https://issuer.example.com/v2/credentials/revocation/status/3262660310",
            "revocationNonce": 3262660310,
            "type": "SparseMerkleTreeProof",
        },
        "credentialSchema": {
            "id": "https://example.com/schemas/kyc-nonmerklized.json",
            "type": "JsonSchema2023",
        },
        "refreshService": {
            "id": "https://refresh.example.com",
            "type": "Iden3RefreshService2023",
        },
        "displayMethod": {
            "id": "https://display.example.com/kyc.json",
            "type": "Iden3BasicDisplayMethodV1",
        },
    }
    document.update(overrides)
    return document


@pytest.fixture
def credential_document():
    """Factory for expired KYCAgeCredential documents."""
    return make_credential_document


@pytest.fixture
def credential(credential_document):
    """An expired, well-formed credential."""
    return Credential.from_dict(credential_document())


@pytest.fixture
def context_documents():
    """Context documents for the credential's three context URLs."""
    return {
        W3C_CONTEXT_URL: {"@context": {"@version": 1.1, "VerifiableCredential": "https://www.w3.org/2018/credentials#VerifiableCredential"}},
        IDEN3_CONTEXT_URL: {"@context": [{"Iden3SparseMerkleTreeProof": "https://schema.iden3.io/core/vocab/Iden3SparseMerkleTreeProof"}]},
        KYC_CONTEXT_URL: kyc_context_document(),
    }


@pytest.fixture
def document_loader(context_documents):
    return FakeDocumentLoader(context_documents)


@pytest.fixture
def store(credential_document):
    return FakeStore({CREDENTIAL_ID: credential_document()})


@pytest.fixture
def provider_factory():
    """Factory for StaticProvider instances."""
    return StaticProvider
