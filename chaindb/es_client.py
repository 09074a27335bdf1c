"""Thin JSON-over-HTTP client for the Elasticsearch-compatible search service."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote

import httpx

from .config import DEFAULT_INDEX_NAME, DEFAULT_TIMEOUT_SEC
from .errors import ServiceConnectionError

SYSTEM_VERSION = "1.0.0"


@dataclass(frozen=True)
class ServiceResponse:
    status: int
    body: object
    text: str

    @property
    def is_error(self) -> bool:
        return self.status >= 400


class SearchClient:
    """One shared connection to the search service.

    ``httpx.Client`` is safe to use from many threads, so a single instance
    is built during bootstrap and handed to every component that talks to
    the index.
    """

    def __init__(
        self,
        base_url: str,
        *,
        index: str = DEFAULT_INDEX_NAME,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("search service URL must be provided via config/env")
        self.base_url = base_url.rstrip("/")
        self.index = index
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def info(self) -> ServiceResponse:
        return self._request("GET", "/")

    def create_index(self, settings: Dict[str, object]) -> ServiceResponse:
        return self._request("PUT", self._index_path(), json=settings)

    def index_document(self, key: str, source: Dict[str, object], refresh: bool = True) -> ServiceResponse:
        params = {"refresh": "true"} if refresh else None
        return self._request("PUT", self._doc_path(key), json=source, params=params)

    def get_document(self, key: str) -> ServiceResponse:
        return self._request("GET", self._doc_path(key))

    def delete_document(self, key: str, refresh: bool = True) -> ServiceResponse:
        params = {"refresh": "true"} if refresh else None
        return self._request("DELETE", self._doc_path(key), params=params)

    def search(self, body: Dict[str, object], track_total_hits: bool = True) -> ServiceResponse:
        params = {"track_total_hits": "true"} if track_total_hits else None
        return self._request("POST", f"{self._index_path()}/_search", json=body, params=params)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _index_path(self) -> str:
        return "/" + quote(self.index, safe="")

    def _doc_path(self, key: str) -> str:
        # Base64 keys may contain '/', '+' and '='.
        return f"{self._index_path()}/_doc/{quote(key, safe='')}"

    def _request(self, method: str, path: str, **kwargs) -> ServiceResponse:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ServiceConnectionError(
                f"Error performing {method} {path} against {self.base_url}: {exc}"
            ) from exc
        text = response.text
        try:
            body = json.loads(text) if text else None
        except ValueError:
            body = None
        return ServiceResponse(status=response.status_code, body=body, text=text)
