"""Pydantic models for the question-answering pipeline."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class PlaceholderKind(str, Enum):
    """Columns that support semantic (embedding) search."""

    CATEGORY = "category"
    VENDOR = "vendor"
    ITEM = "item"


class Placeholder(BaseModel):
    """A ``PLACEHOLDER(kind, text)`` token found in synthesized SQL."""

    kind: PlaceholderKind
    search_text: str
    raw_text: str
    start: int
    end: int


class SynthesizedQuery(BaseModel):
    """SQL as written by the model, possibly containing placeholders."""

    sql: str
    business_id: str


class ResolvedQuery(BaseModel):
    """Concrete SQL plus the parameters to bind when executing it."""

    sql: str
    params: dict[str, Any] = Field(default_factory=dict)
    business_id: str
    predicate_count: int = 0


class ResultSet(BaseModel):
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class ChatMessage(BaseModel):
    """One turn of caller-supplied conversation history."""

    role: Literal["user", "assistant"]
    content: str


class PipelineResponse(BaseModel):
    """Response from the pipeline, as shown to the end user."""

    answer: str
    sql: str | None = None
    row_count: int = 0
    failed_stage: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_stage is None
