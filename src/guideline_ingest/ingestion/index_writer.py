"""Vector-index writers.

Adding a new backend (Pinecone, Qdrant …) only requires subclassing
:class:`VectorIndexWriter` and implementing :meth:`~VectorIndexWriter.upsert`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from guideline_ingest.errors import IndexWriteError
from guideline_ingest.models import PREVIEW_CHARS, EmbeddedChunk, EmbeddingRecord, RecordMetadata

logger = logging.getLogger(__name__)


def record_id(job_id: str, sequence_index: int) -> str:
    """Composite record id; unique per job and chunk position."""
    return f"{job_id}:{sequence_index}"


def build_records(job_id: str, embedded: Sequence[EmbeddedChunk]) -> list[EmbeddingRecord]:
    """Map embedded chunks of one job to index records."""
    return [
        EmbeddingRecord(
            id=record_id(job_id, item.chunk.sequence_index),
            vector=item.vector,
            metadata=RecordMetadata(
                source=item.chunk.source_tag,
                preview=item.chunk.text[:PREVIEW_CHARS],
                job_id=job_id,
                sequence_index=item.chunk.sequence_index,
            ),
        )
        for item in embedded
    ]


class VectorIndexWriter(ABC):
    """Backend-agnostic write side of a vector index.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    def upsert(self, records: Sequence[EmbeddingRecord]) -> None:
        """Insert or overwrite *records* keyed by ``record.id``.

        Raises :class:`IndexWriteError` on any backend failure.
        """
        ...

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable; used by ``/ready``."""
        return True


class ChromaIndexWriter(VectorIndexWriter):
    """Chroma-backed index writer.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection, created on first use.
    host / port:
        Chroma server address.
    distance_metric:
        ``cosine`` | ``l2`` | ``ip``.
    client:
        Pre-built Chroma client; defaults to ``chromadb.HttpClient(host, port)``.
    """

    def __init__(
        self,
        collection_name: str,
        *,
        host: str = "localhost",
        port: int = 8000,
        distance_metric: str = "cosine",
        client: Any = None,
    ) -> None:
        super().__init__(collection_name)
        if client is None:
            import chromadb

            client = chromadb.HttpClient(host=host, port=port)
        self._client = client
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": distance_metric},
        )

    def upsert(self, records: Sequence[EmbeddingRecord]) -> None:
        if not records:
            return
        ids = [r.id for r in records]
        try:
            self._collection.upsert(
                ids=ids,
                embeddings=[r.vector for r in records],
                documents=[r.metadata.preview for r in records],
                metadatas=[r.metadata.model_dump() for r in records],
            )
        except Exception as exc:
            raise IndexWriteError(
                f"Upsert of {len(ids)} records into '{self.collection_name}' failed: {exc}",
                record_ids=ids,
            ) from exc
        logger.debug("Upserted %d records into '%s'", len(ids), self.collection_name)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
