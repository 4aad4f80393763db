from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI

from app.core.config import settings
from app.services.errors import ProviderTimeout, ProviderUnavailable

log = logging.getLogger(__name__)

# text-embedding-3-small accepts 8191 tokens; ~4 chars per token
MAX_INPUT_CHARS = 8191 * 4


class EmbeddingProvider(Protocol):
    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Return a vector of exactly `dimensions` floats, or raise ProviderUnavailable / ProviderTimeout."""
        ...


class OpenAIEmbeddingProvider:
    """
    Embedding provider backed by the OpenAI embeddings API.

    - One AsyncOpenAI client per provider instance (connection pooling).
    - SDK retries are disabled; the stale-embedding sweep owns retrying.
    - Every call is bounded by `timeout_seconds`.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        timeout_seconds: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout_seconds = timeout_seconds or settings.embedding_timeout_seconds
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key.get_secret_value(),
            timeout=self.timeout_seconds,
            max_retries=0,
        )

    async def aclose(self) -> None:
        await self._client.close()

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        if len(text) > MAX_INPUT_CHARS:
            text = text[:MAX_INPUT_CHARS]

        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(model=self.model, input=text, dimensions=self.dimensions),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise ProviderTimeout(f"embedding request timed out after {self.timeout_seconds}s") from e
        except APIConnectionError as e:
            raise ProviderUnavailable(f"embedding provider unreachable: {e}") from e
        except APIError as e:
            # 401/429/5xx all end the same way: keep the old vector, let the sweep retry
            raise ProviderUnavailable(f"embedding provider error: {e}") from e

        if not response.data:
            raise ProviderUnavailable("no embedding returned from provider")

        vector = [float(x) for x in response.data[0].embedding]
        if len(vector) != self.dimensions:
            raise ProviderUnavailable(f"expected {self.dimensions} dimensions, got {len(vector)}")

        log.debug("embedded %d chars with %s", len(text), self.model)
        return vector
