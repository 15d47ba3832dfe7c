"""
Issuer node client.

Fetches credentials from, and issues credentials through, the issuer node
REST API:

    GET  {node}/v2/identities/{issuerDID}/credentials/{credentialID}
    POST {node}/v2/identities/{issuerDID}/credentials
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, TypeVar

import httpx

from vc_refresh.credential import Credential, UpdateRequest
from vc_refresh.errors import (
    CredentialNotFoundError,
    ExternalServiceError,
    SerializationError,
)

logger = logging.getLogger(__name__)

DEFAULT_KEY = "*"

T = TypeVar("T")


def lookup_with_default(mapping: dict[str, T] | None, key: str) -> T | None:
    """Look up key, falling back to the "*" default entry.

    Returns:
        The exact entry, else the default entry, else None.
    """
    if not mapping:
        return None
    if key in mapping:
        return mapping[key]
    if DEFAULT_KEY in mapping:
        return mapping[DEFAULT_KEY]
    return None


class CredentialStore(Protocol):
    """Where credentials are fetched from and reissued through."""

    def fetch(self, issuer_did: str, credential_id: str) -> Credential: ...

    def create(self, issuer_did: str, request: UpdateRequest) -> str: ...


class IssuerClient:
    """CredentialStore backed by one or more issuer nodes."""

    def __init__(
        self,
        supported_issuers: dict[str, str],
        issuer_basic_auth: dict[str, str] | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the issuer client.

        Args:
            supported_issuers: Issuer DID -> issuer node base URL. The "*"
                entry serves any other issuer.
            issuer_basic_auth: Issuer DID -> "user:password", same lookup.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            client: Shared HTTP client. A client per request if not provided.
        """
        self.supported_issuers = supported_issuers
        self.issuer_basic_auth = issuer_basic_auth
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.client = client

    def issuer_url(self, issuer_did: str) -> str:
        """Return the issuer node URL for an issuer.

        Raises:
            ExternalServiceError: If the issuer is not supported.
        """
        url = lookup_with_default(self.supported_issuers, issuer_did)
        if url is None:
            raise ExternalServiceError(f"issuer is not supported: id '{issuer_did}'")
        return url.rstrip("/")

    def basic_auth(self, issuer_did: str) -> tuple[str, str] | None:
        """Return (user, password) for an issuer, or None.

        Raises:
            ExternalServiceError: If the configured entry is malformed.
        """
        if self.issuer_basic_auth is None:
            return None
        namepass = lookup_with_default(self.issuer_basic_auth, issuer_did)
        if namepass is None:
            logger.warning("Issuer '%s' not found in basic auth map", issuer_did)
            return None
        user, sep, password = namepass.partition(":")
        if not sep:
            raise ExternalServiceError(f"invalid basic auth for issuer '{issuer_did}'")
        return user, password

    def _send(self, issuer_did: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        auth = self.basic_auth(issuer_did)
        if auth is not None:
            kwargs["auth"] = auth
        if self.client is not None:
            return self.client.request(method, url, timeout=self.timeout, **kwargs)
        with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
            return client.request(method, url, **kwargs)

    def fetch(self, issuer_did: str, credential_id: str) -> Credential:
        """Fetch a credential by issuer DID and credential id.

        Raises:
            CredentialNotFoundError: If the issuer node answers 404.
            ExternalServiceError: On transport failure or another non-200 status.
            SerializationError: If the response body is not a credential.
        """
        node = self.issuer_url(issuer_did)
        logger.info("Use issuer node '%s' for issuer '%s'", node, issuer_did)
        url = f"{node}/v2/identities/{issuer_did}/credentials/{credential_id}"

        try:
            response = self._send(
                issuer_did, "GET", url, headers={"Accept": "application/json"}
            )
        except httpx.RequestError as e:
            raise ExternalServiceError(f"Failed to get credential from {url}: {e}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            raise CredentialNotFoundError(f"Credential '{credential_id}' not found at {url}")
        if response.status_code != httpx.codes.OK:
            raise ExternalServiceError(
                f"Failed to get credential: invalid status code {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SerializationError(f"Invalid JSON in credential response from {url}") from e
        logger.debug("Raw response from issuer node (%s): %s", url, data)

        if not isinstance(data, dict) or not isinstance(data.get("vc"), dict):
            raise SerializationError(f"Credential response from {url} has no 'vc' object")
        return Credential.from_dict(data["vc"])

    def create(self, issuer_did: str, request: UpdateRequest) -> str:
        """Issue a credential and return its new id.

        Raises:
            ExternalServiceError: On transport failure or a non-201 status.
            SerializationError: If the response carries no credential id.
        """
        node = self.issuer_url(issuer_did)
        logger.info("Use issuer node '%s' for issuer '%s'", node, issuer_did)
        url = f"{node}/v2/identities/{issuer_did}/credentials"

        try:
            response = self._send(issuer_did, "POST", url, json=request.to_dict())
        except httpx.RequestError as e:
            raise ExternalServiceError(f"Failed to create credential at {url}: {e}") from e

        if response.status_code != httpx.codes.CREATED:
            raise ExternalServiceError(
                f"Failed to create credential: invalid status code {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SerializationError(f"Invalid JSON in create response from {url}") from e

        new_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(new_id, str) or not new_id:
            raise SerializationError(f"Create response from {url} has no credential id")
        return new_id
