"""Records, results, and the wire schemas of the search service."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

SYSTEM_VERSION = "1.0.0"


@dataclass(frozen=True)
class Record:
    identifier: str
    name: str
    tags: List[str] = field(default_factory=list)

    def to_source(self) -> dict:
        return {"name": self.name, "tags": list(self.tags)}


@dataclass(frozen=True)
class SearchResult:
    file_name: str
    file_tags: List[str]
    score: float


@dataclass(frozen=True)
class SearchPage:
    query: str
    total: int
    took_ms: int
    results: List[SearchResult]


@dataclass(frozen=True)
class VersionInfo:
    status: int
    result: str
    version: int

    def __str__(self) -> str:
        return f"[{self.status}] {self.result}; version={self.version}"


# --- wire schemas ---
class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ErrorCause(_Wire):
    type: str = ""
    reason: str | None = None


class ErrorDetail(_Wire):
    type: str = ""
    reason: str | None = None
    root_cause: List[ErrorCause] = Field(default_factory=list)


class ErrorResponse(_Wire):
    error: ErrorDetail
    status: int | None = None

    @field_validator("error", mode="before")
    def wrap_plain_error(cls, v):
        # Some endpoints answer with a bare string instead of an object.
        if isinstance(v, str):
            return {"type": "", "reason": v}
        return v

    def root_type(self) -> str:
        if self.error.root_cause:
            return self.error.root_cause[0].type
        return self.error.type


class ServiceVersion(_Wire):
    number: str = ""


class InfoResponse(_Wire):
    name: str = ""
    cluster_name: str = ""
    version: ServiceVersion = Field(default_factory=ServiceVersion)


class WriteResponse(_Wire):
    result: str
    version: int = Field(alias="_version")


class DocumentSource(_Wire):
    name: str
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    def tags_or_empty(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class GetResponse(_Wire):
    id: str = Field(alias="_id")
    found: bool = False
    source: DocumentSource | None = Field(default=None, alias="_source")


class Hit(_Wire):
    score: float | None = Field(default=None, alias="_score")
    source: DocumentSource = Field(alias="_source")


class HitsTotal(_Wire):
    value: int = 0
    relation: str = "eq"


class Hits(_Wire):
    total: HitsTotal | None = None
    hits: List[Hit] = Field(default_factory=list)

    @field_validator("total", mode="before")
    def legacy_total(cls, v):
        # Pre-7.x services report the total as a bare integer.
        if isinstance(v, int):
            return {"value": v, "relation": "eq"}
        return v


class SearchResponse(_Wire):
    took: int = 0
    hits: Hits


def decode_error(body: object) -> ErrorResponse | None:
    """Decode an ``{"error": ...}`` payload, or ``None`` when the body has another shape."""
    if not isinstance(body, dict) or "error" not in body:
        return None
    try:
        return ErrorResponse.model_validate(body)
    except ValidationError:
        return None
