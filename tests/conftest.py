"""Shared fixtures: an in-memory stand-in for the search service."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import parse_qs, unquote

import httpx
import pytest
from fastapi.testclient import TestClient

from chaindb import create_app
from chaindb.bootstrap import RetryPolicy
from chaindb.config import AppConfig
from chaindb.es_client import SearchClient

ES_URL = "http://es.test:9200"
INDEX = "documents"


def _error(status: int, err_type: str, reason: str, root_type: str | None = None) -> httpx.Response:
    return httpx.Response(
        status,
        json={
            "error": {
                "type": err_type,
                "reason": reason,
                "root_cause": [{"type": root_type or err_type, "reason": reason}],
            },
            "status": status,
        },
    )


class FakeSearchService:
    """Just enough of the Elasticsearch REST API for the catalog.

    Scoring: each whitespace-separated query term found (case-insensitive
    substring) in a field adds one point to that field; a hit's score is its
    best field's score, mirroring ``best_fields``. Ties keep insertion order.
    """

    def __init__(self):
        self.indexes: Dict[str, dict] = {}
        self.docs: Dict[str, Dict[str, dict]] = {}
        self.versions: Dict[str, Dict[str, int]] = {}
        self.requests: List[httpx.Request] = []
        self.down = False
        self.fail_connects = 0
        self.overrides: Dict[tuple, Callable[[], httpx.Response]] = {}

    # ------------------------------------------------------------------
    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        raw = request.url.raw_path.decode("ascii")
        path, _, query = raw.partition("?")
        params = {k: v[0] for k, v in parse_qs(query).items()}
        segments = [unquote(s) for s in path.strip("/").split("/") if s]

        if request.method == "GET" and not segments:
            if self.fail_connects > 0:
                self.fail_connects -= 1
                raise httpx.ConnectError("connection refused", request=request)

        override = self.overrides.get((request.method, path))
        if override is not None:
            return override()

        if not segments:
            return httpx.Response(
                200,
                json={"name": "node-1", "cluster_name": "test-cluster", "version": {"number": "7.17.0"}},
            )
        index = segments[0]
        if len(segments) == 1 and request.method == "PUT":
            return self._create_index(index, request)
        if index not in self.indexes:
            return _error(404, "index_not_found_exception", f"no such index [{index}]")
        if len(segments) == 3 and segments[1] == "_doc":
            key = segments[2]
            if request.method == "PUT":
                return self._put_doc(index, key, request, params)
            if request.method == "GET":
                return self._get_doc(index, key)
            if request.method == "DELETE":
                return self._delete_doc(index, key)
        if len(segments) == 2 and segments[1] == "_search" and request.method == "POST":
            return self._search(index, request, params)
        return _error(400, "illegal_argument_exception", f"unsupported {request.method} {path}")

    # ------------------------------------------------------------------
    def _create_index(self, index: str, request: httpx.Request) -> httpx.Response:
        if index in self.indexes:
            return _error(
                400,
                "resource_already_exists_exception",
                f"index [{index}/abc] already exists",
            )
        self.indexes[index] = json.loads(request.content or b"{}")
        self.docs[index] = {}
        self.versions[index] = {}
        return httpx.Response(200, json={"acknowledged": True, "index": index})

    def _put_doc(self, index: str, key: str, request: httpx.Request, params: dict) -> httpx.Response:
        source = json.loads(request.content)
        created = key not in self.docs[index]
        version = self.versions[index].get(key, 0) + 1
        self.versions[index][key] = version
        self.docs[index][key] = source
        return httpx.Response(
            201 if created else 200,
            json={
                "_index": index,
                "_id": key,
                "_version": version,
                "result": "created" if created else "updated",
                "forced_refresh": params.get("refresh") == "true",
            },
        )

    def _get_doc(self, index: str, key: str) -> httpx.Response:
        if key not in self.docs[index]:
            return httpx.Response(404, json={"_index": index, "_id": key, "found": False})
        return httpx.Response(
            200,
            json={
                "_index": index,
                "_id": key,
                "_version": self.versions[index][key],
                "found": True,
                "_source": self.docs[index][key],
            },
        )

    def _delete_doc(self, index: str, key: str) -> httpx.Response:
        version = self.versions[index].get(key, 0) + 1
        if key not in self.docs[index]:
            return httpx.Response(404, json={"_index": index, "_id": key, "_version": version, "result": "not_found"})
        del self.docs[index][key]
        self.versions[index][key] = version
        return httpx.Response(200, json={"_index": index, "_id": key, "_version": version, "result": "deleted"})

    def _search(self, index: str, request: httpx.Request, params: dict) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        multi = body.get("query", {}).get("multi_match")
        if multi is None:
            return _error(400, "parsing_exception", "unknown query", root_type="parsing_exception")
        terms = [t.lower() for t in str(multi.get("query", "")).split()]
        scored = []
        for key, source in self.docs[index].items():
            best = 0.0
            for field in multi.get("fields", []):
                value = source.get(field)
                text = " ".join(value) if isinstance(value, list) else str(value or "")
                field_score = float(sum(1 for t in terms if t in text.lower()))
                best = max(best, field_score)
            if best > 0:
                scored.append((best, key, source))
        scored.sort(key=lambda item: item[0], reverse=True)
        size = int(body.get("size", 10))
        hits = [{"_index": index, "_id": key, "_score": score, "_source": source} for score, key, source in scored[:size]]
        return httpx.Response(
            200,
            json={
                "took": 1,
                "timed_out": False,
                "hits": {
                    "total": {"value": len(scored), "relation": "eq"},
                    "max_score": hits[0]["_score"] if hits else None,
                    "hits": hits,
                },
            },
        )


@pytest.fixture
def fake_service() -> FakeSearchService:
    return FakeSearchService()


@pytest.fixture
def transport(fake_service) -> httpx.MockTransport:
    return httpx.MockTransport(fake_service.handle)


@pytest.fixture
def es_client(transport):
    client = SearchClient(ES_URL, index=INDEX, timeout=1.0, transport=transport)
    yield client
    client.close()


@pytest.fixture
def ready_client(es_client, fake_service):
    """A client whose index already exists."""
    from chaindb.schema import SchemaManager

    SchemaManager(es_client).ensure_index()
    return es_client


@pytest.fixture
def store_dir(tmp_path) -> Path:
    root = tmp_path / "store"
    (root / "docs").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"hello world")
    (root / "docs" / "report.pdf").write_bytes(b"%PDF-1.4 " + b"x" * 100)
    (tmp_path / "secret.txt").write_text("outside the root")
    return root


@pytest.fixture
def app_config(store_dir) -> AppConfig:
    return AppConfig(
        es_url=ES_URL,
        index_name=INDEX,
        timeout_sec=1.0,
        retry_delay_sec=0.0,
        store_dir=store_dir,
        port=8080,
        site_root="localhost:8080",
        site_path="",
    )


@pytest.fixture
def build_app(transport):
    def _build(config: AppConfig, sleeps: Optional[list] = None):
        sleeps = sleeps if sleeps is not None else []
        return create_app(
            config,
            transport=transport,
            retry=RetryPolicy(delay=0.0, max_attempts=5),
            sleep=sleeps.append,
        )

    return _build


@pytest.fixture
def api(app_config, build_app):
    with TestClient(build_app(app_config)) as client:
        yield client
