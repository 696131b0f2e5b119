"""Tests for finquery.resolver — embeddings mocked."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from finquery.errors import EmbeddingError, PlaceholderParseError
from finquery.models import PlaceholderKind, SynthesizedQuery
from finquery.placeholders import contains_placeholder
from finquery.resolver import PlaceholderResolver, to_vector_literal
from tests.conftest import SAMPLE_EMBEDDING, SAMPLE_SQL


def _query(sql, business_id="1234"):
    return SynthesizedQuery(sql=sql, business_id=business_id)


class TestToVectorLiteral:
    def test_formats_pgvector_text(self):
        assert to_vector_literal([0.1, 0.2, 3]) == "[0.1,0.2,3.0]"


class TestResolve:
    async def test_example_question_resolves_to_bound_predicate(self, mock_embeddings):
        resolver = PlaceholderResolver(mock_embeddings)
        resolved = await resolver.resolve(_query(SAMPLE_SQL))

        assert resolved.sql == (
            "SELECT SUM(total) FROM transactions WHERE business_id = '1234' AND "
            "category_embedding <-> CAST(:embedding_0 AS vector) < 0.5"
        )
        assert resolved.params == {"embedding_0": "[0.1,0.2,0.3]"}
        assert resolved.predicate_count == 1
        assert resolved.business_id == "1234"
        mock_embeddings.embed_query.assert_awaited_once_with("electronics")

    async def test_vector_is_never_spliced_into_sql(self, mock_embeddings):
        resolved = await PlaceholderResolver(mock_embeddings).resolve(_query(SAMPLE_SQL))
        assert "0.1" not in resolved.sql
        assert "$$" not in resolved.sql

    async def test_n_placeholders_give_n_predicates(self, mock_embeddings):
        sql = (
            "SELECT vendor, SUM(total) FROM transactions WHERE business_id = '1234' "
            "AND PLACEHOLDER(category, travel) AND PLACEHOLDER(vendor, delta) "
            "AND PLACEHOLDER(item, flight) GROUP BY vendor"
        )
        resolved = await PlaceholderResolver(mock_embeddings).resolve(_query(sql))

        assert not contains_placeholder(resolved.sql)
        assert resolved.sql.count("<->") == 3
        assert resolved.predicate_count == 3
        assert sorted(resolved.params) == ["embedding_0", "embedding_1", "embedding_2"]
        assert "vendor_embedding <-> CAST(:embedding_1 AS vector)" in resolved.sql
        assert resolved.sql.endswith("GROUP BY vendor")

    async def test_identical_placeholders_resolve_independently(self, mock_embeddings):
        sql = "SELECT 1 FROM t WHERE business_id = '1' AND PLACEHOLDER(vendor, acme) AND PLACEHOLDER(vendor, acme)"
        resolved = await PlaceholderResolver(mock_embeddings).resolve(_query(sql, "1"))
        assert ":embedding_0" in resolved.sql
        assert ":embedding_1" in resolved.sql
        assert mock_embeddings.embed_query.await_count == 2

    async def test_zero_placeholders_returns_sql_unchanged(self, mock_embeddings):
        sql = "  SELECT COUNT(*) FROM transactions WHERE business_id = '1234'\n"
        resolved = await PlaceholderResolver(mock_embeddings).resolve(_query(sql))
        assert resolved.sql == sql.strip()
        assert resolved.params == {}
        mock_embeddings.embed_query.assert_not_called()

    async def test_resolution_is_idempotent(self, mock_embeddings):
        resolver = PlaceholderResolver(mock_embeddings)
        first = await resolver.resolve(_query(SAMPLE_SQL))
        second = await resolver.resolve(_query(SAMPLE_SQL))
        assert first.model_dump_json() == second.model_dump_json()

    async def test_custom_threshold_and_columns(self, mock_embeddings):
        resolver = PlaceholderResolver(
            mock_embeddings,
            threshold=0.3,
            kind_columns={PlaceholderKind.CATEGORY: "cat_vec"},
        )
        resolved = await resolver.resolve(_query(SAMPLE_SQL))
        assert resolved.sql.endswith("cat_vec <-> CAST(:embedding_0 AS vector) < 0.3")

    async def test_unknown_kind_fails_before_embedding(self, mock_embeddings):
        sql = "SELECT 1 FROM transactions WHERE business_id = '1234' AND PLACEHOLDER(brand, sony)"
        with pytest.raises(PlaceholderParseError):
            await PlaceholderResolver(mock_embeddings).resolve(_query(sql))
        mock_embeddings.embed_query.assert_not_called()


class TestEmbeddingFailures:
    async def test_service_error_becomes_embedding_error(self):
        embeddings = MagicMock()
        embeddings.embed_query = AsyncMock(side_effect=ConnectionError("service down"))
        with pytest.raises(EmbeddingError, match="service down"):
            await PlaceholderResolver(embeddings).resolve(_query(SAMPLE_SQL))

    async def test_timeout_becomes_embedding_error(self):
        async def slow(_text):
            await asyncio.sleep(1)
            return SAMPLE_EMBEDDING

        embeddings = MagicMock()
        embeddings.embed_query = slow
        with pytest.raises(EmbeddingError, match="timed out"):
            await PlaceholderResolver(embeddings, timeout=0.01).resolve(_query(SAMPLE_SQL))

    async def test_wrong_dimension_raises(self, mock_embeddings):
        resolver = PlaceholderResolver(mock_embeddings, dimension=384)
        with pytest.raises(EmbeddingError, match="384"):
            await resolver.resolve(_query(SAMPLE_SQL))

    async def test_empty_vector_raises(self):
        embeddings = MagicMock()
        embeddings.embed_query = AsyncMock(return_value=[])
        with pytest.raises(EmbeddingError, match="empty vector"):
            await PlaceholderResolver(embeddings).resolve(_query(SAMPLE_SQL))
