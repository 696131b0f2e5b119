"""Shared fixtures for all test modules."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from finquery.models import ResultSet

SAMPLE_EMBEDDING = [0.1, 0.2, 0.3]

SAMPLE_SQL = (
    "SELECT SUM(total) FROM transactions "
    "WHERE business_id = '1234' AND PLACEHOLDER(category, electronics)"
)

SAMPLE_ROWS = [
    {"business_id": "1234", "vendor": "Best Buy", "category": "Electronics", "total": 199.99},
    {"business_id": "1234", "vendor": "Staples", "category": "Office Supplies", "total": 45.50},
    {"business_id": "1234", "vendor": "Apple", "category": "Electronics", "total": 1299.00},
    {"business_id": "9999", "vendor": "Costco", "category": "Groceries", "total": 310.25},
]


@pytest.fixture
def sample_embedding():
    return SAMPLE_EMBEDDING.copy()


@pytest.fixture
def mock_embeddings():
    """Embedding client returning the same vector for any text."""
    client = MagicMock()
    client.embed_query = AsyncMock(return_value=SAMPLE_EMBEDDING.copy())
    return client


@pytest.fixture
def mock_llm_client():
    """OpenAIClient stand-in; set ``complete.return_value`` per test."""
    client = MagicMock()
    client.complete = AsyncMock(return_value="")
    client.costs = []
    return client


@pytest.fixture
def sample_result_set():
    return ResultSet(
        columns=["vendor", "total"],
        rows=[
            {"vendor": "Best Buy", "total": 199.99},
            {"vendor": "Apple", "total": 1299.0},
        ],
    )


@pytest.fixture
def mock_openai_response():
    """Factory for chat.completions.create responses."""

    def make(content, prompt_tokens=100, completion_tokens=20):
        message = MagicMock()
        message.content = content
        choice = MagicMock()
        choice.message = message
        response = MagicMock()
        response.choices = [choice]
        response.usage.prompt_tokens = prompt_tokens
        response.usage.completion_tokens = completion_tokens
        return response

    return make


@pytest_asyncio.fixture
async def sqlite_engine():
    """In-memory transactions table (no vector support)."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.execute(
            text(
                "CREATE TABLE transactions ("
                "id INTEGER PRIMARY KEY, business_id TEXT, vendor TEXT, "
                "category TEXT, total REAL)"
            )
        )
        await conn.execute(
            text(
                "INSERT INTO transactions (business_id, vendor, category, total) "
                "VALUES (:business_id, :vendor, :category, :total)"
            ),
            SAMPLE_ROWS,
        )
    yield engine
    await engine.dispose()
