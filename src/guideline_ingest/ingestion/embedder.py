"""Concurrent, batched embedding of chunks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING

from guideline_ingest.errors import ConfigError, EmbeddingServiceError
from guideline_ingest.models import Chunk, EmbeddedChunk

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(
    provider: str = "huggingface",
    model: str = "sentence-transformers/all-MiniLM-L6-v2",
    *,
    api_key: str = "",
) -> Embeddings:
    """Return the configured LangChain embedding function.

    Built once per process and handed to :class:`EmbeddingBatcher`.
    """
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        logger.info("Using OpenAI embeddings: %s", model)
        return OpenAIEmbeddings(model=model, api_key=api_key or None)
    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        logger.info("Using HuggingFace embeddings: %s", model)
        return HuggingFaceEmbeddings(model_name=model, encode_kwargs={"normalize_embeddings": True})
    raise ConfigError(f"Unsupported embedding provider: {provider!r}")


def _status_code(exc: BaseException) -> int | None:
    """Best-effort HTTP status from a provider exception."""
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


class EmbeddingBatcher:
    """Embed chunks in sequential batches of concurrent calls.

    At most *batch_size* embedding calls are in flight at any time, and no
    call of batch N+1 starts before every call of batch N has resolved.

    Parameters
    ----------
    embeddings:
        A LangChain ``Embeddings`` implementation; only ``aembed_query`` is used.
    batch_size:
        Number of chunks embedded concurrently.
    max_retries:
        Extra attempts per chunk before its failure fails the batch.
    backoff_seconds:
        Base delay; attempt *n* waits ``backoff_seconds * 2 ** (n - 1)``.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        batch_size: int = 10,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
    ) -> None:
        if batch_size <= 0:
            raise ConfigError(f"batch_size ({batch_size}) must be > 0")
        self._embeddings = embeddings
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    async def embed_batches(self, chunks: Sequence[Chunk]) -> AsyncIterator[list[EmbeddedChunk]]:
        """Yield one ordered list of embedded chunks per batch."""
        total_batches = (len(chunks) + self.batch_size - 1) // self.batch_size
        dim: int | None = None

        for batch_num, start in enumerate(range(0, len(chunks), self.batch_size), start=1):
            batch = list(chunks[start : start + self.batch_size])
            logger.info("Processing batch %d of %d (%d chunks)", batch_num, total_batches, len(batch))

            results = await asyncio.gather(
                *(self._embed_one(chunk) for chunk in batch),
                return_exceptions=True,
            )

            embedded: list[EmbeddedChunk] = []
            for chunk, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, EmbeddingServiceError):
                        raise result
                    raise EmbeddingServiceError(
                        f"Embedding failed for chunk {chunk.sequence_index}: {result}",
                        sequence_index=chunk.sequence_index,
                    ) from result
                if dim is None:
                    dim = len(result)
                elif len(result) != dim:
                    raise EmbeddingServiceError(
                        f"Inconsistent embedding dimension at chunk {chunk.sequence_index}: "
                        f"expected {dim}, got {len(result)}",
                        sequence_index=chunk.sequence_index,
                    )
                embedded.append(EmbeddedChunk(chunk=chunk, vector=result))
            yield embedded

    async def embed_all(self, chunks: Sequence[Chunk]) -> list[EmbeddedChunk]:
        """Embed every chunk and return them in sequence order."""
        out: list[EmbeddedChunk] = []
        async for batch in self.embed_batches(chunks):
            out.extend(batch)
        return out

    async def _embed_one(self, chunk: Chunk) -> list[float]:
        attempt = 0
        while True:
            try:
                vector = await self._embeddings.aembed_query(chunk.text)
                return [float(v) for v in vector]
            except Exception as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise EmbeddingServiceError(
                        f"Embedding failed for chunk {chunk.sequence_index} "
                        f"after {attempt} attempt(s): {exc}",
                        sequence_index=chunk.sequence_index,
                        status_code=_status_code(exc),
                    ) from exc
                wait = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Embedding error for chunk %d (attempt %d/%d), retrying in %.2fs: %s",
                    chunk.sequence_index,
                    attempt,
                    self.max_retries,
                    wait,
                    exc,
                )
                await asyncio.sleep(wait)
