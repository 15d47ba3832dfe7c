"""Tests for JSON-LD context loading and aggregation."""

import threading

import pytest
import respx
from httpx import Response

from conftest import (
    IDEN3_CONTEXT_URL,
    KYC_CONTEXT_URL,
    W3C_CONTEXT_URL,
    FakeDocumentLoader,
)
from vc_refresh.context import ContextAggregator, DocumentLoadError, HTTPDocumentLoader


class TestContextAggregator:
    """Tests for best-effort context aggregation."""

    def test_empty_list(self, document_loader):
        aggregator = ContextAggregator(document_loader)
        assert aggregator.aggregate([]) == {"@context": []}
        assert aggregator.aggregate(None) == {"@context": []}
        assert document_loader.loaded == []

    def test_flattens_arrays_and_appends_objects(self):
        loader = FakeDocumentLoader({
            "https://a.example/ctx": {"@context": [{"a": "1"}, {"b": "2"}]},
            "https://b.example/ctx": {"@context": {"c": "3"}},
        })
        aggregator = ContextAggregator(loader)

        result = aggregator.aggregate(["https://a.example/ctx", "https://b.example/ctx"])

        assert result == {"@context": [{"a": "1"}, {"b": "2"}, {"c": "3"}]}

    def test_one_of_two_fails(self):
        """A failed URI is skipped and the other is still merged."""
        loader = FakeDocumentLoader({"https://ok.example/ctx": {"@context": [{"ok": "yes"}]}})
        aggregator = ContextAggregator(loader)

        result = aggregator.aggregate(["https://missing.example/ctx", "https://ok.example/ctx"])

        assert result == {"@context": [{"ok": "yes"}]}

    def test_one_of_three_fails(self, context_documents):
        del context_documents[IDEN3_CONTEXT_URL]
        aggregator = ContextAggregator(FakeDocumentLoader(context_documents))

        result = aggregator.aggregate([W3C_CONTEXT_URL, IDEN3_CONTEXT_URL, KYC_CONTEXT_URL])

        assert len(result["@context"]) == 2
        assert "KYCAgeCredential" in result["@context"][1]

    @pytest.mark.parametrize("document", [None, ["not", "an", "object"], {"no": "context"}])
    def test_skips_malformed_documents(self, document):
        loader = FakeDocumentLoader({
            "https://bad.example/ctx": document,
            "https://ok.example/ctx": {"@context": {"ok": "yes"}},
        })
        aggregator = ContextAggregator(loader)

        result = aggregator.aggregate(["https://bad.example/ctx", "", "https://ok.example/ctx"])

        assert result == {"@context": [{"ok": "yes"}]}

    def test_loader_raising_unexpected_error(self):
        class BrokenLoader:
            def load(self, uri):
                raise RuntimeError("boom")

        aggregator = ContextAggregator(BrokenLoader())
        assert aggregator.aggregate(["https://a.example/ctx"]) == {"@context": []}

    def test_cancelled_returns_partial_result(self):
        cancel = threading.Event()

        class CancellingLoader(FakeDocumentLoader):
            def load(self, uri):
                doc = super().load(uri)
                cancel.set()
                return doc

        loader = CancellingLoader({
            "https://a.example/ctx": {"@context": {"a": "1"}},
            "https://b.example/ctx": {"@context": {"b": "2"}},
        })
        aggregator = ContextAggregator(loader)

        result = aggregator.aggregate(["https://a.example/ctx", "https://b.example/ctx"], cancel)

        assert result == {"@context": [{"a": "1"}]}
        assert loader.loaded == ["https://a.example/ctx"]


class TestHTTPDocumentLoader:
    """Tests for HTTP document loading."""

    @respx.mock
    def test_load_document(self):
        route = respx.get(KYC_CONTEXT_URL).mock(
            return_value=Response(200, json={"@context": {"a": "1"}})
        )
        loader = HTTPDocumentLoader()

        doc = loader.load(KYC_CONTEXT_URL)
        loader.load(KYC_CONTEXT_URL)

        assert doc.document == {"@context": {"a": "1"}}
        assert doc.document_url == KYC_CONTEXT_URL
        assert route.call_count == 1

    @respx.mock
    def test_http_error(self):
        respx.get(KYC_CONTEXT_URL).mock(return_value=Response(404))
        loader = HTTPDocumentLoader()

        with pytest.raises(DocumentLoadError, match="404"):
            loader.load(KYC_CONTEXT_URL)

    @respx.mock
    def test_invalid_json(self):
        respx.get(KYC_CONTEXT_URL).mock(return_value=Response(200, text="not json"))
        loader = HTTPDocumentLoader()

        with pytest.raises(DocumentLoadError, match="Invalid JSON"):
            loader.load(KYC_CONTEXT_URL)

    @respx.mock
    def test_cache_evicts_oldest(self):
        first = respx.get(KYC_CONTEXT_URL).mock(return_value=Response(200, json={"@context": {}}))
        second = respx.get(W3C_CONTEXT_URL).mock(return_value=Response(200, json={"@context": {}}))
        loader = HTTPDocumentLoader(cache_size=1)

        loader.load(KYC_CONTEXT_URL)
        loader.load(W3C_CONTEXT_URL)
        loader.load(W3C_CONTEXT_URL)
        loader.load(KYC_CONTEXT_URL)

        assert first.call_count == 2
        assert second.call_count == 1

    @respx.mock
    def test_cache_disabled(self):
        route = respx.get(KYC_CONTEXT_URL).mock(return_value=Response(200, json={"@context": {}}))
        loader = HTTPDocumentLoader(cache_size=0)

        loader.load(KYC_CONTEXT_URL)
        loader.load(KYC_CONTEXT_URL)

        assert route.call_count == 2
