"""Query construction and result mapping for the documents index."""
from __future__ import annotations

import html
from typing import Dict, List

from pydantic import ValidationError

from .config import RESULT_PAGE_SIZE
from .errors import NotInitializedError, QueryError, ResponseParseError
from .es_client import SearchClient, ServiceResponse
from .models import SearchPage, SearchResponse, SearchResult, decode_error

SYSTEM_VERSION = "1.0.0"

SEARCH_FIELDS = ("name", "tags")


def build_query(query_text: str, size: int = RESULT_PAGE_SIZE) -> Dict[str, object]:
    """Build a multi_match body over name and tags.

    ``best_fields`` scores a document by its best matching field, so a term
    repeated in both name and tags does not count twice.
    """
    return {
        "query": {
            "multi_match": {
                "query": html.unescape(query_text or ""),
                "type": "best_fields",
                "fields": list(SEARCH_FIELDS),
            }
        },
        "size": size,
    }


def raise_for_query_error(res: ServiceResponse) -> None:
    if not res.is_error:
        return
    err = decode_error(res.body)
    if err is None:
        raise QueryError(
            f"[{res.status}] Error parsing the error response body: {res.text[:200]}",
            status=res.status,
        )
    raise QueryError(
        f"[{res.status}] {err.error.type}: {err.error.reason}",
        status=res.status,
        error_type=err.error.type,
        reason=err.error.reason or "",
    )


def parse_search_response(res: ServiceResponse) -> SearchResponse:
    if not isinstance(res.body, dict):
        raise ResponseParseError(f"Error parsing the response body: expected JSON object, got {res.text[:200]!r}")
    try:
        return SearchResponse.model_validate(res.body)
    except ValidationError as exc:
        raise ResponseParseError(f"Error parsing the response body: {exc}") from exc


def to_results(parsed: SearchResponse) -> List[SearchResult]:
    results: List[SearchResult] = []
    for hit in parsed.hits.hits:
        results.append(
            SearchResult(
                file_name=hit.source.name,
                file_tags=list(hit.source.tags),
                score=float(hit.score or 0.0),
            )
        )
    return results


def sort_by_score(results: List[SearchResult]) -> List[SearchResult]:
    """Highest score first; ties keep the service order."""
    return sorted(results, key=lambda r: r.score, reverse=True)


class QueryEngine:
    def __init__(self, client: SearchClient | None, page_size: int = RESULT_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    def search_page(self, query_text: str) -> SearchPage:
        if self.client is None:
            raise NotInitializedError("QueryEngine")
        body = build_query(query_text, self.page_size)
        res = self.client.search(body, track_total_hits=True)
        raise_for_query_error(res)
        parsed = parse_search_response(res)
        results = to_results(parsed)
        total = parsed.hits.total.value if parsed.hits.total is not None else len(results)
        return SearchPage(query=query_text, total=total, took_ms=parsed.took, results=results)

    def search(self, query_text: str) -> List[SearchResult]:
        """Return hits in the order the service ranked them."""
        return self.search_page(query_text).results
