import mimetypes
import re
from email.utils import format_datetime, parsedate_to_datetime
from typing import Iterator, List, Tuple
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field, field_validator
from starlette.background import BackgroundTask

from .context import AppContext
from .errors import (
    AccessError,
    DeleteError,
    NotFound,
    NotInitializedError,
    QueryError,
    ResponseParseError,
    ServiceConnectionError,
    ServiceError,
    WriteError,
)
from .models import SearchResult
from .search import sort_by_score
from .storage import OpenedFile
from .utils import log_info, log_warn

SYSTEM_VERSION = "1.0.0"

CHUNK_SIZE = 64 * 1024
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")

router = APIRouter()


# --- リクエストモデル ---
class TagsRequest(BaseModel):
    tags: List[str] = Field(default_factory=list, max_length=256)

    @field_validator("tags")
    def strip_tags(cls, v: List[str]) -> List[str]:
        cleaned = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned


def get_ctx(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None or not ctx.ready:
        raise HTTPException(status_code=503, detail="Search system is still initializing")
    return ctx


def result_to_dict(result: SearchResult) -> dict:
    return {"name": result.file_name, "tags": list(result.file_tags), "score": result.score}


def service_http_error(exc: Exception) -> HTTPException:
    """Translate index-layer errors into the response for this request only."""
    if isinstance(exc, NotInitializedError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, DeleteError) and exc.status == 404:
        return HTTPException(status_code=404, detail="Record not found")
    if isinstance(exc, QueryError) and 400 <= exc.status < 500:
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ServiceError, ResponseParseError, ServiceConnectionError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")


@router.get("/", response_class=FileResponse)
def read_root(request: Request):
    index_file = request.app.state.static_dir / "index.html"
    if not index_file.exists():
        raise HTTPException(status_code=404, detail="UI not found")
    return FileResponse(index_file)


@router.get("/api/search")
def search(request: Request, q: str = Query("", max_length=1024)):
    ctx = get_ctx(request)
    try:
        page = ctx.engine.search_page(q)
    except (QueryError, ResponseParseError, ServiceConnectionError, NotInitializedError) as exc:
        log_warn("Error searching ES Database with Query.", Query=repr(q), Error=exc)
        raise service_http_error(exc) from exc
    results = sort_by_score(page.results)
    return {
        "query": q,
        "total": page.total,
        "took_ms": page.took_ms,
        "results": [result_to_dict(r) for r in results],
    }


@router.get("/api/records/{name:path}")
def get_record(name: str, request: Request):
    ctx = get_ctx(request)
    try:
        record = ctx.records.get(name)
    except (ServiceError, ResponseParseError, ServiceConnectionError, NotInitializedError) as exc:
        log_warn("Error fetching record.", File=name, Error=exc)
        raise service_http_error(exc) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"id": record.identifier, "name": record.name, "tags": list(record.tags)}


@router.put("/api/records/{name:path}")
def put_record(name: str, req: TagsRequest, request: Request):
    ctx = get_ctx(request)
    if not ctx.storage.exists(name):
        raise HTTPException(status_code=404, detail="File not found in storage")
    try:
        info = ctx.records.upsert(name, req.tags)
    except (WriteError, ResponseParseError, NotInitializedError) as exc:
        log_warn("Record upsert returned ERR.", File=name, Tags=req.tags, Error=exc)
        raise service_http_error(exc) from exc
    log_info("Updated Record in ES Database.", File=name, Tags=req.tags, Response=info)
    return {"name": name, "tags": req.tags, "result": info.result, "version": info.version}


@router.delete("/api/records/{name:path}")
def delete_record(name: str, request: Request):
    ctx = get_ctx(request)
    try:
        info = ctx.records.remove(name)
    except (DeleteError, ResponseParseError, NotInitializedError) as exc:
        log_warn("Record delete returned ERR.", File=name, Error=exc)
        raise service_http_error(exc) from exc
    log_info("Deleted Record from ES Database.", File=name, Response=info)
    return {"name": name, "result": info.result, "version": info.version}


@router.post("/api/reindex")
def reindex(request: Request):
    """Register every stored file that has no record yet, with no tags."""
    ctx = get_ctx(request)
    scanned = 0
    added: List[str] = []
    try:
        for name in ctx.storage.iter_files():
            scanned += 1
            if ctx.records.get(name) is None:
                ctx.records.upsert(name, [])
                added.append(name)
    except (ServiceError, ResponseParseError, ServiceConnectionError, NotInitializedError) as exc:
        log_warn("Reindex aborted.", scanned=scanned, added=len(added), Error=exc)
        raise service_http_error(exc) from exc
    log_info("Reindex finished.", scanned=scanned, added=len(added))
    return {"scanned": scanned, "added": added}


def parse_range(header: str, size: int) -> Tuple[int, int] | None:
    """Parse a single ``bytes=a-b`` range into inclusive offsets.

    Returns None for headers this server ignores (multi-range, other units).
    Raises ValueError when the range cannot be satisfied.
    """
    match = RANGE_PATTERN.match(header.strip())
    if not match:
        return None
    first, last = match.groups()
    if not first and not last:
        return None
    if not first:
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise ValueError("unsatisfiable range")
        return max(0, size - suffix), size - 1
    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise ValueError("unsatisfiable range")
    return start, min(end, size - 1)


def not_modified_since(header: str, opened: OpenedFile) -> bool:
    try:
        since = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return False
    if since is None or since.tzinfo is None:
        return False
    return opened.modified.replace(microsecond=0) <= since


def iter_file(opened: OpenedFile, start: int, length: int) -> Iterator[bytes]:
    try:
        opened.stream.seek(start)
        remaining = length
        while remaining > 0:
            chunk = opened.stream.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        opened.close()


def content_disposition(filename: str) -> str:
    return f"attachment; filename*=utf-8''{quote(filename)}"


@router.get("/file/{name:path}")
def download_file(name: str, request: Request):
    ctx = get_ctx(request)
    try:
        opened = ctx.storage.open_file(name)
    except NotFound as exc:
        log_warn("Error opening file from backend.", File=name, Error=exc)
        raise HTTPException(status_code=404, detail="File not found") from exc
    except AccessError as exc:
        log_warn("Error opening file from backend.", File=name, Error=exc)
        raise HTTPException(status_code=500, detail="File could not be read") from exc

    try:
        headers = {
            "Last-Modified": format_datetime(opened.modified.replace(microsecond=0), usegmt=True),
            "Accept-Ranges": "bytes",
            "Content-Disposition": content_disposition(opened.name),
        }
        since = request.headers.get("if-modified-since")
        if since and not_modified_since(since, opened):
            opened.close()
            return Response(status_code=304, headers=headers)

        start, end, status = 0, opened.size - 1, 200
        range_header = request.headers.get("range")
        if range_header:
            try:
                parsed = parse_range(range_header, opened.size)
            except ValueError:
                opened.close()
                return Response(status_code=416, headers={"Content-Range": f"bytes */{opened.size}"})
            if parsed is not None:
                start, end = parsed
                status = 206
                headers["Content-Range"] = f"bytes {start}-{end}/{opened.size}"
        length = max(0, end - start + 1)
        headers["Content-Length"] = str(length)
        media_type = mimetypes.guess_type(opened.name)[0] or "application/octet-stream"
    except Exception:
        opened.close()
        raise
    return StreamingResponse(
        iter_file(opened, start, length),
        status_code=status,
        media_type=media_type,
        headers=headers,
        background=BackgroundTask(opened.close),
    )


@router.get("/api/health")
def health(request: Request):
    ctx = getattr(request.app.state, "ctx", None)
    state = ctx.manager.state.value if ctx is not None else "disconnected"
    return JSONResponse(
        {"status": "ok", "ready": bool(ctx and ctx.ready), "state": state},
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )
