"""OpenAI embedding generation service."""

import logging
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from docdialogue.core.config import settings
from docdialogue.core.exceptions import EmbeddingError
from docdialogue.models.document import Chunk, EmbeddingVector
from docdialogue.services.cache import CacheService
from docdialogue.services.retry import RetryPolicy
from docdialogue.services.sanitizer import safe_snippet

logger = logging.getLogger(__name__)


def batched(items: Sequence, size: int) -> List[list]:
    """Split a sequence into consecutive lists of at most ``size`` items."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[CacheService] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            client: OpenAI client; created from settings on first use if omitted.
            model: Embedding model identifier.
            batch_size: Maximum inputs per embeddings request.
            retry_policy: Backoff policy wrapped around every batch call.
            cache: Optional cache for query embeddings.
        """
        self._client = client
        self.model = model or settings.embedding_model
        self.batch_size = batch_size or settings.embedding_batch_size
        self.retry_policy = retry_policy or RetryPolicy(name="embeddings")
        self.cache = cache

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.http_timeout_seconds,
            )
        return self._client

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts in one request.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, in input order.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=texts,
            )
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embeddings: {str(e)}") from e

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding count {len(data)} != input count {len(texts)}")
        return [list(item.embedding) for item in data]

    async def embed_chunks(self, chunks: List[Chunk]) -> List[EmbeddingVector]:
        """
        Embed chunks batch by batch, each batch under the retry policy.

        Args:
            chunks: Ordered chunks of one document version.

        Returns:
            One vector per chunk; ``result[i]`` belongs to ``chunks[i]``.

        Raises:
            EmbeddingError: When a batch still fails after the last attempt.
        """
        vectors: List[EmbeddingVector] = []

        for batch in batched(chunks, self.batch_size):
            texts = [chunk.text for chunk in batch]

            async def call(texts: List[str] = texts) -> List[List[float]]:
                return await self.generate_embeddings(texts)

            embeddings = await self.retry_policy.run(call)
            for chunk, values in zip(batch, embeddings):
                vectors.append(
                    EmbeddingVector(
                        values=values,
                        index=chunk.index,
                        path=chunk.path,
                        snippet=safe_snippet(
                            chunk.text, settings.embedding_snippet_chars),
                    )
                )

        return vectors

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a single query text.

        Query embeddings are cached by model and text when a cache is set.
        """
        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.make_key("embedding", self.model, text)
            cached = await self.cache.get_json(cache_key)
            if cached and isinstance(cached.get("values"), list):
                return cached["values"]

        embeddings = await self.generate_embeddings([text])
        values = embeddings[0]
        if not values:
            raise EmbeddingError("Embedding failed")

        if cache_key is not None:
            await self.cache.set_json(cache_key, {"values": values})
        return values
