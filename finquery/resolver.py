"""Rewrite placeholder tokens into bound vector-similarity predicates."""

import asyncio
from typing import Protocol

from finquery.errors import EmbeddingError, PlaceholderParseError
from finquery.logger import get_logger
from finquery.models import PlaceholderKind, ResolvedQuery, SynthesizedQuery
from finquery.placeholders import contains_placeholder, find_placeholders

logger = get_logger("finquery.resolver")

DEFAULT_KIND_COLUMNS = {kind: f"{kind.value}_embedding" for kind in PlaceholderKind}


class EmbeddingClient(Protocol):
    async def embed_query(self, query: str) -> list[float]: ...


def to_vector_literal(embedding: list[float]) -> str:
    """Format a vector in pgvector's text input form, e.g. ``[0.1,0.2]``."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


class PlaceholderResolver:
    """Turns a SynthesizedQuery into a ResolvedQuery.

    Each placeholder becomes ``<column> <-> CAST(:embedding_<n> AS vector) <
    <threshold>``; the vector itself is always a bound parameter.
    """

    def __init__(
        self,
        embeddings: EmbeddingClient,
        threshold: float = 0.5,
        kind_columns: dict[PlaceholderKind, str] | None = None,
        dimension: int | None = None,
        timeout: float = 10.0,
    ):
        self.embeddings = embeddings
        self.threshold = threshold
        self.kind_columns = {**DEFAULT_KIND_COLUMNS, **(kind_columns or {})}
        self.dimension = dimension
        self.timeout = timeout

    async def _embed(self, text: str) -> list[float]:
        try:
            embedding = await asyncio.wait_for(
                self.embeddings.embed_query(text), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingError(
                f"Embedding timed out after {self.timeout}s for {text!r}"
            ) from exc
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed for {text!r}: {exc}") from exc

        if not embedding:
            raise EmbeddingError(f"Embedding service returned an empty vector for {text!r}")
        if self.dimension and len(embedding) != self.dimension:
            raise EmbeddingError(
                f"Expected a {self.dimension}-dimensional embedding, got {len(embedding)}"
            )
        return list(embedding)

    def predicate(self, kind: PlaceholderKind, param_name: str) -> str:
        column = self.kind_columns[kind]
        return f"{column} <-> CAST(:{param_name} AS vector) < {self.threshold}"

    async def resolve(self, synthesized: SynthesizedQuery) -> ResolvedQuery:
        sql = synthesized.sql
        placeholders = find_placeholders(sql)

        params: dict[str, object] = {}
        replacements: list[tuple[int, int, str]] = []
        for n, placeholder in enumerate(placeholders):
            param_name = f"embedding_{n}"
            embedding = await self._embed(placeholder.search_text)
            params[param_name] = to_vector_literal(embedding)
            replacements.append(
                (placeholder.start, placeholder.end, self.predicate(placeholder.kind, param_name))
            )

        # Right to left, so earlier offsets stay valid.
        for start, end, text in reversed(replacements):
            sql = sql[:start] + text + sql[end:]
        sql = sql.strip()

        if contains_placeholder(sql):
            raise PlaceholderParseError("Unresolved placeholder left in query")

        logger.info(
            "Resolved %d placeholder(s) for business %s",
            len(placeholders), synthesized.business_id,
        )
        return ResolvedQuery(
            sql=sql,
            params=params,
            business_id=synthesized.business_id,
            predicate_count=len(placeholders),
        )
