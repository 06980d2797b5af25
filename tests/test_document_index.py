# =============================================================================
# Unit Tests — Elasticsearch Document Index Client
# =============================================================================
#
# Query builders are pure and tested directly. The HTTP client is tested
# against httpx.MockTransport, so no Elasticsearch instance is needed.
# =============================================================================

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.models.documents import DocumentHit
from app.models.requests import DateRange, SearchFilters
from app.services.document_index import (
    SEARCH_FIELDS,
    ElasticsearchIndex,
    build_filter_clauses,
    build_hybrid_query,
    build_lexical_query,
    parse_search_response,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _es_hit(doc_id, title="Doc", score=1.5, **source):
    return {
        "_id": doc_id,
        "_score": score,
        "_source": {"title": title, "content": "body", "type": "pdf", **source},
    }


# ---------------------------------------------------------------------------
# Test: Filter Clauses
# ---------------------------------------------------------------------------


class TestBuildFilterClauses:
    """Request filters → Elasticsearch filter context."""

    def test_none(self):
        assert build_filter_clauses(None) == []

    def test_all_clauses(self):
        filters = SearchFilters(
            document_types=["csv", "xlsx"],
            categories=["Finance"],
            departments=["Sales"],
            tags=["q4"],
            date_range=DateRange(start="2021-01-01", end="2021-12-31"),
        )
        assert build_filter_clauses(filters) == [
            {"terms": {"type": ["csv", "xlsx"]}},
            {"terms": {"metadata.category": ["Finance"]}},
            {"terms": {"metadata.department": ["Sales"]}},
            {"terms": {"metadata.tags": ["q4"]}},
            {"range": {"createdAt": {"gte": "2021-01-01", "lte": "2021-12-31"}}},
        ]

    def test_open_ended_date_range(self):
        filters = SearchFilters.model_validate({"dateRange": {"start": "2021-01-01"}})
        assert build_filter_clauses(filters) == [
            {"range": {"createdAt": {"gte": "2021-01-01"}}},
        ]
        filters = SearchFilters.model_validate({"dateRange": {"end": "2021-12-31"}})
        assert build_filter_clauses(filters) == [
            {"range": {"createdAt": {"lte": "2021-12-31"}}},
        ]

    def test_date_range_without_bounds_skipped(self):
        filters = SearchFilters(date_range=DateRange())
        assert build_filter_clauses(filters) == []
        assert filters.is_empty()

    def test_empty_lists_skipped(self):
        filters = SearchFilters(categories=[], tags=["x"])
        assert build_filter_clauses(filters) == [{"terms": {"metadata.tags": ["x"]}}]

    def test_camel_case_input(self):
        filters = SearchFilters.model_validate({"documentTypes": ["pdf"]})
        assert build_filter_clauses(filters) == [{"terms": {"type": ["pdf"]}}]


# ---------------------------------------------------------------------------
# Test: Query Bodies
# ---------------------------------------------------------------------------


class TestBuildHybridQuery:
    """kNN OR fuzzy multi_match."""

    def test_knn_and_multi_match(self):
        body = build_hybrid_query("revenue", [0.1, 0.2], None, 5)
        should = body["query"]["bool"]["should"]
        assert body["size"] == 5
        assert body["query"]["bool"]["minimum_should_match"] == 1
        assert should[0]["knn"]["query_vector"] == [0.1, 0.2]
        assert should[0]["knn"]["k"] == 10
        assert should[0]["knn"]["num_candidates"] == 100
        assert should[1]["multi_match"]["fuzziness"] == "AUTO"
        assert should[1]["multi_match"]["fields"] == SEARCH_FIELDS
        assert "filter" not in body["query"]["bool"]

    def test_zero_vector_omits_knn(self):
        body = build_hybrid_query("revenue", [0.0] * 768, None, 5)
        should = body["query"]["bool"]["should"]
        assert len(should) == 1
        assert "multi_match" in should[0]

    def test_filters_attached(self):
        filters = SearchFilters(departments=["Sales"])
        body = build_hybrid_query("q", [1.0], filters, 3)
        assert body["query"]["bool"]["filter"] == [
            {"terms": {"metadata.department": ["Sales"]}},
        ]

    def test_embedding_excluded_from_source(self):
        body = build_hybrid_query("q", [1.0], None, 3)
        assert body["_source"] == {"excludes": ["embedding"]}


class TestBuildLexicalQuery:
    """dis_max of fuzzy multi_match and lenient query_string."""

    def test_dis_max_without_filters(self):
        body = build_lexical_query("revenue 2021", None, 4)
        dis_max = body["query"]["dis_max"]
        assert dis_max["tie_breaker"] == 0.2
        assert "multi_match" in dis_max["queries"][0]
        query_string = dis_max["queries"][1]["query_string"]
        assert query_string["lenient"] is True
        assert query_string["default_operator"] == "AND"

    def test_filters_wrap_in_bool(self):
        filters = SearchFilters(tags=["x"])
        body = build_lexical_query("q", filters, 4)
        assert "dis_max" in body["query"]["bool"]["must"]
        assert body["query"]["bool"]["filter"] == [{"terms": {"metadata.tags": ["x"]}}]


# ---------------------------------------------------------------------------
# Test: Response Parsing
# ---------------------------------------------------------------------------


class TestParseSearchResponse:
    """hits.hits → DocumentHit."""

    def test_parses_hits(self):
        payload = {"hits": {"hits": [
            _es_hit("1", metadata={"fileName": "a.pdf", "category": "Finance"}),
        ]}}
        [hit] = parse_search_response(payload)
        assert isinstance(hit, DocumentHit)
        assert hit.id == "1"
        assert hit.score == 1.5
        assert hit.metadata.file_name == "a.pdf"
        assert hit.metadata.as_dict() == {
            "fileName": "a.pdf", "category": "Finance", "tags": [],
        }

    def test_source_id_wins_over_index_id(self):
        payload = {"hits": {"hits": [_es_hit("es-id", id="doc-id")]}}
        assert parse_search_response(payload)[0].id == "doc-id"

    def test_embedding_and_text_dropped(self):
        payload = {"hits": {"hits": [
            _es_hit("1", embedding=[0.1] * 3, text="combined"),
        ]}}
        hit = parse_search_response(payload)[0]
        assert not hasattr(hit, "embedding")
        assert hit.content == "body"

    def test_highlights_kept(self):
        raw = _es_hit("1")
        raw["highlight"] = {"content": ["<em>revenue</em>"]}
        hit = parse_search_response({"hits": {"hits": [raw]}})[0]
        assert hit.highlights == {"content": ["<em>revenue</em>"]}

    def test_malformed_hit_dropped(self):
        payload = {"hits": {"hits": [
            _es_hit("1", metadata={"tags": "nope"}),
            _es_hit("2"),
        ]}}
        assert [h.id for h in parse_search_response(payload)] == ["2"]

    def test_empty_payload(self):
        assert parse_search_response({}) == []


# ---------------------------------------------------------------------------
# Test: HTTP Client
# ---------------------------------------------------------------------------


def _index_with(handler) -> ElasticsearchIndex:
    return ElasticsearchIndex(
        url="http://es.test:9200",
        api_key="secret",
        index_name="docs",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestElasticsearchIndex:
    """Requests sent and responses handled."""

    def test_hybrid_search_posts_to_index(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"hits": {"hits": [_es_hit("1")]}})

        index = _index_with(handler)
        hits = _run(index.hybrid_search("revenue", [0.5], size=3))

        assert [h.id for h in hits] == ["1"]
        assert seen["method"] == "POST"
        assert seen["path"] == "/docs/_search"
        assert seen["auth"] == "ApiKey secret"
        assert seen["body"]["size"] == 3
        assert "knn" in seen["body"]["query"]["bool"]["should"][0]

    def test_lexical_search_sends_dis_max(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"hits": {"hits": []}})

        hits = _run(_index_with(handler).lexical_search("revenue"))
        assert hits == []
        assert "dis_max" in seen["body"]["query"]

    def test_http_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="shard failure")

        with pytest.raises(httpx.HTTPStatusError):
            _run(_index_with(handler).lexical_search("revenue"))

    def test_health_check_ok(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            assert request.url.path == "/docs"
            return httpx.Response(200)

        assert _run(_index_with(handler).health_check()) is True

    def test_health_check_missing_index(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        assert _run(_index_with(handler).health_check()) is False

    def test_health_check_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert _run(_index_with(handler).health_check()) is False
