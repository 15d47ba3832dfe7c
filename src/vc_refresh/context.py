"""
JSON-LD context loading and aggregation.

Contexts referenced by a credential are fetched and merged into a single
document whose "@context" array feeds serialization slot lookups.
Aggregation is best-effort: a context that cannot be loaded is skipped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from vc_refresh.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class DocumentLoadError(ExternalServiceError):
    """Raised when a JSON-LD document cannot be loaded."""


@dataclass
class RemoteDocument:
    """A loaded JSON-LD document."""

    document_url: str
    document: Any


class DocumentLoader(Protocol):
    """Anything that can load a JSON-LD document by URI."""

    def load(self, uri: str) -> RemoteDocument: ...


class HTTPDocumentLoader:
    """Loads JSON-LD documents over HTTP(S), caching by URL.

    The cache holds at most cache_size documents; the oldest entry is
    evicted first.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        client: httpx.Client | None = None,
        cache_size: int = 256,
    ) -> None:
        """Initialize the document loader.

        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            client: Shared HTTP client. A client per request if not provided.
            cache_size: Maximum number of cached documents. 0 disables caching.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.client = client
        self.cache_size = cache_size
        self._cache: dict[str, RemoteDocument] = {}

    def load(self, uri: str, use_cache: bool = True) -> RemoteDocument:
        """Load a document.

        Raises:
            DocumentLoadError: If fetching or decoding fails.
        """
        if use_cache and uri in self._cache:
            return self._cache[uri]

        headers = {"Accept": "application/ld+json, application/json"}
        try:
            if self.client is not None:
                response = self.client.get(uri, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                    response = client.get(uri, headers=headers)
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            raise DocumentLoadError(
                f"HTTP error loading {uri}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise DocumentLoadError(f"Network error loading {uri}: {e}") from e
        except ValueError as e:
            raise DocumentLoadError(f"Invalid JSON in document {uri}") from e

        doc = RemoteDocument(document_url=str(response.url), document=data)
        if use_cache and self.cache_size > 0:
            while len(self._cache) >= self.cache_size:
                self._cache.pop(next(iter(self._cache)), None)
            self._cache[uri] = doc
        return doc

    def clear_cache(self) -> None:
        """Clear the document cache."""
        self._cache.clear()


class ContextAggregator:
    """Merges the "@context" entries of several JSON-LD documents."""

    def __init__(self, document_loader: DocumentLoader) -> None:
        self.document_loader = document_loader

    def aggregate(
        self,
        contexts: list[str] | None,
        cancel: threading.Event | None = None,
    ) -> dict[str, list[Any]]:
        """Load each context URI and merge their "@context" entries.

        Array-valued "@context" entries are flattened into the result;
        anything else is appended as-is. URIs that fail to load, or whose
        document is not an object with "@context", are skipped. If cancel
        is set, remaining URIs are skipped and the partial result returned.

        Args:
            contexts: Context URIs in credential order.
            cancel: Optional cancellation signal.

        Returns:
            {"@context": [...]} with the merged entries.
        """
        merged: list[Any] = []
        if not contexts:
            logger.warning("No contexts to aggregate")
            return {"@context": merged}

        for index, uri in enumerate(contexts):
            if cancel is not None and cancel.is_set():
                logger.warning(
                    "Context aggregation cancelled, skipping %d remaining context(s)",
                    len(contexts) - index,
                )
                break

            if not uri:
                logger.warning("Empty context string, skipping")
                continue

            try:
                remote = self.document_loader.load(uri)
            except Exception as e:
                logger.warning("Failed to load context '%s': %s", uri, e)
                continue

            if remote is None or remote.document is None:
                logger.warning("No document returned for context '%s'", uri)
                continue

            document = remote.document
            if not isinstance(document, dict):
                logger.warning("Document is not an object for context '%s'", uri)
                continue

            if "@context" not in document:
                logger.warning("@context key not found in context '%s'", uri)
                continue

            ld_context = document["@context"]
            if isinstance(ld_context, list):
                merged.extend(ld_context)
            else:
                merged.append(ld_context)

        return {"@context": merged}
