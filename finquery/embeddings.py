"""Embedding clients used to turn placeholder search text into vectors."""

import asyncio
import os
from functools import lru_cache

from openai import AsyncOpenAI
from sentence_transformers import SentenceTransformer


@lru_cache(maxsize=4)
def _load_model(model_name: str) -> SentenceTransformer:
    """Load and cache a SentenceTransformer model (avoids reloading on repeated calls)."""
    return SentenceTransformer(model_name)


class LocalEmbeddings:
    """Local sentence-transformers client for generating text embeddings.

    The vector length must match the ``vector(n)`` columns in the database:
        - "BAAI/bge-small-en-v1.5"  384 dims [default]
        - "all-MiniLM-L6-v2"        384 dims
        - "BAAI/bge-large-en-v1.5"  1024 dims
    """

    def __init__(
        self,
        model: str = "BAAI/bge-small-en-v1.5",
        batch_size: int = 64,
        device: str | None = None,  # None = auto-detect (cuda if available, else cpu)
    ):
        self.model_name = model
        self.batch_size = batch_size
        self._model = _load_model(model)
        if device:
            self._model = self._model.to(device)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts. Runs in a thread pool to avoid blocking the event loop."""
        if not texts:
            return []

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._model.encode(
                texts,
                batch_size=self.batch_size,
                show_progress_bar=False,
                normalize_embeddings=True,
                convert_to_numpy=True,
            ).tolist(),
        )

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single query string."""
        results = await self.embed_texts([query])
        return results[0]


class OpenAIEmbeddings:
    """OpenAI embeddings API client, batched."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        batch_size: int = 100,
        dimensions: int | None = None,
    ):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.batch_size = batch_size
        self.dimensions = dimensions

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        kwargs = {"model": self.model, "input": texts}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        response = await self.client.embeddings.create(**kwargs)
        return [item.embedding for item in response.data]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        embeddings: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            embeddings.extend(await self._embed_batch(texts[i:i + self.batch_size]))
        return embeddings

    async def embed_query(self, query: str) -> list[float]:
        results = await self.embed_texts([query])
        return results[0]
