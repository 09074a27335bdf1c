"""Index schema management: creates the documents index with its n-gram analyzer."""
from __future__ import annotations

from typing import Dict

from .config import (
    ANALYZER_NAME,
    MAX_NGRAM_DIFF,
    NGRAM_FILTER_NAME,
    NGRAM_MAX_GRAM,
    NGRAM_MIN_GRAM,
    NGRAM_TOKENIZER_NAME,
)
from .errors import NotInitializedError, SchemaError
from .es_client import SearchClient
from .models import decode_error
from .utils import log_info, log_warn

SYSTEM_VERSION = "1.0.0"

ALREADY_EXISTS = "resource_already_exists_exception"


def build_index_settings(
    min_gram: int = NGRAM_MIN_GRAM,
    max_gram: int = NGRAM_MAX_GRAM,
) -> Dict[str, object]:
    """Settings for an index whose analyzer splits text into n-grams."""
    if min_gram < 1 or max_gram < min_gram:
        raise ValueError(f"invalid n-gram range: {min_gram}..{max_gram}")
    ngram = {"type": "ngram", "min_gram": min_gram, "max_gram": max_gram}
    return {
        "settings": {
            "max_ngram_diff": max(MAX_NGRAM_DIFF, max_gram - min_gram),
            "analysis": {
                "analyzer": {
                    ANALYZER_NAME: {
                        "type": "custom",
                        "tokenizer": NGRAM_TOKENIZER_NAME,
                        "filter": [NGRAM_FILTER_NAME],
                    }
                },
                "filter": {NGRAM_FILTER_NAME: dict(ngram)},
                "tokenizer": {NGRAM_TOKENIZER_NAME: dict(ngram)},
            },
        }
    }


class SchemaManager:
    def __init__(self, client: SearchClient | None):
        self.client = client

    def ensure_index(self) -> bool:
        """Create the index unless it already exists.

        Returns True when a new index was created and False when an existing
        one was kept. Any other rejection raises ``SchemaError``; transport
        failures propagate as ``ServiceConnectionError``.
        """
        if self.client is None:
            raise NotInitializedError("SchemaManager")
        index = self.client.index
        res = self.client.create_index(build_index_settings())
        if not res.is_error:
            log_warn("Created new Index", index=index)
            return True

        err = decode_error(res.body)
        if err is None:
            raise SchemaError(
                f"Got Response Error from ES Database: [{res.status}] {res.text}",
                status=res.status,
            )
        if err.root_type() == ALREADY_EXISTS:
            log_info(f"Index `{index}` already exists. Continuing...")
            return False
        raise SchemaError(
            f"Got Response Error from ES Database: [{res.status}] {err.error.type}: {err.error.reason}",
            status=res.status,
            error_type=err.error.type,
            reason=err.error.reason or "",
        )
