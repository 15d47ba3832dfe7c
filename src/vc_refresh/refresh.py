"""
Credential refresh pipeline.

Refreshes an expired credential on behalf of its owner:

1. Fetch the credential from the issuer node and validate its structure
2. Check it has expired and belongs to the caller
3. Ask the provider registered for its subject type for updated fields
4. Confirm the update changes the credential's index commitment
5. Issue a credential with the merged subject and fetch it back

The issuer node is not written to before step 4 succeeds.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterator

from vc_refresh.claims import ClaimParser, SerializationClaimParser
from vc_refresh.config import Settings
from vc_refresh.context import ContextAggregator, DocumentLoader, HTTPDocumentLoader
from vc_refresh.credential import Credential, RefreshStage, UpdateRequest
from vc_refresh.eligibility import check_ownership, is_updatable
from vc_refresh.errors import (
    EligibilityError,
    IndexImpactError,
    InternalError,
    ProviderError,
    RefreshCancelledError,
    RefreshError,
    StructuralError,
)
from vc_refresh.impact import ImpactVerdict, IndexImpactAnalyzer
from vc_refresh.issuer import CredentialStore, IssuerClient
from vc_refresh.providers import Provider, ProviderRegistry
from vc_refresh.revocation import extract_revocation_nonce

logger = logging.getLogger(__name__)

DEFAULT_TIME_EXPIRATION = timedelta(minutes=5)


class RefreshStatus(Enum):
    """Overall refresh outcome."""

    REFRESHED = "refreshed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class RefreshResult:
    """Outcome of a refresh attempt."""

    status: RefreshStatus
    credential_id: str
    credential: Credential | None = None
    error: RefreshError | None = None

    @property
    def is_refreshed(self) -> bool:
        return self.status == RefreshStatus.REFRESHED and self.credential is not None

    @property
    def stage(self) -> RefreshStage | None:
        """The stage the refresh failed in, if it failed."""
        return self.error.stage if self.error is not None else None


@contextmanager
def _stage(stage: RefreshStage) -> Iterator[None]:
    """Tag RefreshErrors raised in the block with the stage being entered."""
    try:
        yield
    except RefreshError as e:
        if e.stage is None:
            e.stage = stage
        raise


def _check_cancelled(cancel: threading.Event | None, stage: RefreshStage) -> None:
    if cancel is not None and cancel.is_set():
        raise RefreshCancelledError("refresh cancelled", stage)


class RefreshOrchestrator:
    """Runs the refresh pipeline for one credential at a time.

    Instances hold no per-refresh state and can serve concurrent refreshes.
    """

    def __init__(
        self,
        store: CredentialStore,
        providers: ProviderRegistry,
        document_loader: DocumentLoader | None = None,
        claim_parser: ClaimParser | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Issuer node the credential is fetched from and reissued through.
            providers: Update providers by credential subject type.
            document_loader: JSON-LD document loader. HTTP if not provided.
            claim_parser: Claim layout oracle. Serialization-info based if not provided.
            clock: Returns the current aware UTC time.
        """
        self.store = store
        self.providers = providers
        self.aggregator = ContextAggregator(document_loader or HTTPDocumentLoader())
        self.analyzer = IndexImpactAnalyzer(
            claim_parser or SerializationClaimParser(), self.aggregator
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings) -> RefreshOrchestrator:
        """Build an orchestrator wired to HTTP collaborators."""
        store = IssuerClient(
            supported_issuers=settings.supported_issuers,
            issuer_basic_auth=settings.issuers_basic_auth or None,
            timeout=settings.http_timeout,
            verify_ssl=settings.verify_ssl,
        )
        providers = ProviderRegistry.from_directory(
            settings.providers_dir,
            timeout=settings.http_timeout,
            verify_ssl=settings.verify_ssl,
        )
        loader = HTTPDocumentLoader(timeout=settings.http_timeout, verify_ssl=settings.verify_ssl)
        parser = SerializationClaimParser(settings.merklized_root_position)
        return cls(store, providers, document_loader=loader, claim_parser=parser)

    def process(
        self,
        issuer: str,
        owner: str,
        credential_id: str,
        cancel: threading.Event | None = None,
    ) -> Credential:
        """Refresh a credential and return the newly issued one.

        Args:
            issuer: Issuer DID.
            owner: DID of the caller, who must be the credential subject.
            credential_id: Id of the credential to refresh.
            cancel: Optional cancellation signal, checked before every
                external call.

        Returns:
            The refreshed credential as fetched back from the issuer node.

        Raises:
            RefreshError: If any stage fails; error.stage names it.
        """
        logger.info("Starting refresh for credential %s", credential_id)

        _check_cancelled(cancel, RefreshStage.FETCHED)
        with _stage(RefreshStage.FETCHED):
            credential = self.store.fetch(issuer, credential_id)

        with _stage(RefreshStage.STRUCTURALLY_VALID):
            errors = credential.structure_errors()
            if errors:
                raise StructuralError("; ".join(errors))
        subject: dict[str, Any] = credential.subject or {}

        with _stage(RefreshStage.ELIGIBLE):
            try:
                is_updatable(credential, self.clock())
            except EligibilityError as e:
                raise EligibilityError(f"credential '{credential.id}': {e.message}") from e

        with _stage(RefreshStage.OWNED):
            try:
                check_ownership(credential, owner)
            except EligibilityError as e:
                raise EligibilityError(f"credential '{credential.id}': {e.message}") from e

        with _stage(RefreshStage.TYPE_RESOLVED):
            subject_type = subject.get("type")
            if not isinstance(subject_type, str) or not subject_type:
                raise StructuralError("invalid or missing type in credentialSubject")

        with _stage(RefreshStage.PROVIDER_RESOLVED):
            try:
                provider = self.providers.resolve(subject_type)
            except ProviderError as e:
                raise ProviderError(f"credential '{credential.id}': {e.message}") from e

        _check_cancelled(cancel, RefreshStage.FIELDS_UPDATED)
        with _stage(RefreshStage.FIELDS_UPDATED):
            updated_fields = self._provide(provider, subject)

        time_expiration = provider.settings.time_expiration
        if not time_expiration:
            logger.warning("Provider for %s has no time expiration, using default 5 minutes", subject_type)
            time_expiration = DEFAULT_TIME_EXPIRATION

        _check_cancelled(cancel, RefreshStage.IMPACT_CONFIRMED)
        with _stage(RefreshStage.IMPACT_CONFIRMED):
            context_document = self.aggregator.aggregate(credential.context, cancel)
            verdict = self.analyzer.decide(credential, subject, updated_fields, context_document)
            if verdict != ImpactVerdict.UPDATED:
                raise IndexImpactError("index update fail: no index fields were updated")

        new_subject = {**subject, **updated_fields}

        with _stage(RefreshStage.NONCE_EXTRACTED):
            rev_nonce = extract_revocation_nonce(credential)

        with _stage(RefreshStage.REISSUED):
            if not credential.schema_id:
                raise StructuralError("credential schema ID is empty")
            if credential.refresh_service is None:
                logger.warning("Credential %s has no refresh service", credential.id)
            if credential.display_method is None:
                logger.warning("Credential %s has no display method", credential.id)

            request = UpdateRequest(
                credential_schema=credential.schema_id,
                type=subject_type,
                credential_subject=new_subject,
                expiration=int((self.clock() + time_expiration).timestamp()),
                rev_nonce=rev_nonce,
                refresh_service=credential.refresh_service,
                display_method=credential.display_method,
            )
            _check_cancelled(cancel, RefreshStage.REISSUED)
            refreshed_id = self.store.create(issuer, request)
        logger.info("Issued credential %s to replace %s", refreshed_id, credential_id)

        _check_cancelled(cancel, RefreshStage.REFETCHED)
        with _stage(RefreshStage.REFETCHED):
            return self.store.fetch(issuer, refreshed_id)

    def _provide(self, provider: Provider, subject: dict[str, Any]) -> dict[str, Any]:
        """Ask a provider for updated fields, enforcing the subject id is kept."""
        try:
            updated = provider.provide(dict(subject))
        except RefreshError:
            raise
        except Exception as e:
            raise ProviderError(f"provider failed: {e}") from e

        if updated is None:
            logger.warning("Provider returned no fields, using empty map")
            return {}
        if not isinstance(updated, dict):
            raise ProviderError(f"provider returned {type(updated).__name__}, expected a mapping")
        if "id" in updated and updated["id"] != subject.get("id"):
            raise ProviderError("provider attempted to change the credential subject id")
        return dict(updated)

    def refresh(
        self,
        issuer: str,
        owner: str,
        credential_id: str,
        cancel: threading.Event | None = None,
    ) -> RefreshResult:
        """Refresh a credential, reporting the outcome instead of raising.

        Returns:
            RefreshResult with the new credential, or the error that stopped
            the pipeline. Unexpected faults become InternalError.
        """
        try:
            credential = self.process(issuer, owner, credential_id, cancel)
        except RefreshError as e:
            if e.rejection:
                logger.warning("Refresh of credential %s rejected: %s", credential_id, e)
                status = RefreshStatus.REJECTED
            else:
                logger.error("Refresh of credential %s failed: %s", credential_id, e)
                status = RefreshStatus.FAILED
            return RefreshResult(status=status, credential_id=credential_id, error=e)
        except Exception as e:
            logger.exception("Unexpected error refreshing credential %s", credential_id)
            return RefreshResult(
                status=RefreshStatus.FAILED,
                credential_id=credential_id,
                error=InternalError(f"unexpected error: {e}"),
            )

        return RefreshResult(
            status=RefreshStatus.REFRESHED,
            credential_id=credential_id,
            credential=credential,
        )


def refresh_credential(
    issuer: str,
    owner: str,
    credential_id: str,
    settings: Settings | None = None,
) -> RefreshResult:
    """Convenience function to refresh a credential.

    Args:
        issuer: Issuer DID.
        owner: DID of the credential subject.
        credential_id: Id of the credential to refresh.
        settings: Service settings. Read from the environment if not provided.

    Returns:
        RefreshResult with the new credential or the failure.
    """
    orchestrator = RefreshOrchestrator.from_settings(settings or Settings.from_env())
    return orchestrator.refresh(issuer, owner, credential_id)
