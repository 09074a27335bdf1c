"""Record store: upsert and delete name/tag records keyed by the encoded file name."""
from __future__ import annotations

from typing import Iterable, List

from pydantic import ValidationError

from .errors import (
    DeleteError,
    NotInitializedError,
    ResponseParseError,
    ServiceConnectionError,
    ServiceError,
    WriteError,
)
from .es_client import SearchClient, ServiceResponse
from .models import GetResponse, Record, VersionInfo, WriteResponse, decode_error
from .utils import derive_key

SYSTEM_VERSION = "1.0.0"


def _clean_tags(tags: Iterable[str]) -> List[str]:
    return [str(tag) for tag in tags]


def _rejected(error_cls: type[ServiceError], action: str, res: ServiceResponse) -> ServiceError:
    err = decode_error(res.body)
    if err is None:
        # A delete of a missing document answers 404 with {"result": "not_found"}.
        result = res.body.get("result", "") if isinstance(res.body, dict) else ""
        return error_cls(
            f"Got Response Error from ES Database while {action}: [{res.status}] {result}".rstrip(),
            status=res.status,
            error_type=result,
        )
    return error_cls(
        f"Got Response Error from ES Database while {action}: [{res.status}] {err.error.type}: {err.error.reason}",
        status=res.status,
        error_type=err.error.type,
        reason=err.error.reason or "",
    )


def _version_info(res: ServiceResponse) -> VersionInfo:
    try:
        parsed = WriteResponse.model_validate(res.body)
    except ValidationError as exc:
        raise ResponseParseError(f"Error parsing the response body: {exc}") from exc
    return VersionInfo(status=res.status, result=parsed.result, version=parsed.version)


class RecordStore:
    """Create, replace and delete the index entry for each stored file.

    Writes ask the service to refresh immediately so the change is visible
    to the next search.
    """

    def __init__(self, client: SearchClient | None):
        self.client = client

    def _require_client(self) -> SearchClient:
        if self.client is None:
            raise NotInitializedError("RecordStore")
        return self.client

    def upsert(self, name: str, tags: Iterable[str]) -> VersionInfo:
        client = self._require_client()
        record = Record(identifier=derive_key(name), name=name, tags=_clean_tags(tags))
        try:
            res = client.index_document(record.identifier, record.to_source(), refresh=True)
        except ServiceConnectionError as exc:
            raise WriteError(f"Error performing ESAPI index request: {exc}") from exc
        if res.is_error:
            raise _rejected(WriteError, "indexing", res)
        return _version_info(res)

    def remove(self, name: str) -> VersionInfo:
        """Delete the record for ``name``. The file itself is left untouched."""
        client = self._require_client()
        key = derive_key(name)
        try:
            res = client.delete_document(key, refresh=True)
        except ServiceConnectionError as exc:
            raise DeleteError(f"Error performing ESAPI delete request: {exc}") from exc
        if res.is_error:
            raise _rejected(DeleteError, "deleting", res)
        return _version_info(res)

    def get(self, name: str) -> Record | None:
        client = self._require_client()
        key = derive_key(name)
        res = client.get_document(key)
        if res.is_error:
            # A missing document answers 404 with {"found": false}; a missing index does not.
            if res.status == 404 and isinstance(res.body, dict) and res.body.get("found") is False:
                return None
            raise _rejected(ServiceError, "fetching", res)
        try:
            parsed = GetResponse.model_validate(res.body)
        except ValidationError as exc:
            raise ResponseParseError(f"Error parsing the response body: {exc}") from exc
        if not parsed.found or parsed.source is None:
            return None
        return Record(identifier=parsed.id, name=parsed.source.name, tags=list(parsed.source.tags))
