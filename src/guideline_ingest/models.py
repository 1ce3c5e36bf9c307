"""Domain models flowing through the ingestion pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

PREVIEW_CHARS = 100


class Document(BaseModel):
    """Raw bytes of a fetched document, held in memory until extraction."""

    content: bytes
    source_url: str
    resolved_url: str
    content_type: str | None = None
    has_valid_signature: bool = True


class ExtractedText(BaseModel):
    """Plain text decoded from exactly one :class:`Document`."""

    text: str
    page_count: int = 0

    model_config = {"frozen": True}


class Chunk(BaseModel):
    """A bounded, overlapping window of extracted text.

    Attributes
    ----------
    text:
        The window contents.
    sequence_index:
        Zero-based ordinal of the chunk within its source text.
    source_tag:
        Label copied into every record's ``source`` metadata.
    """

    text: str
    sequence_index: int
    source_tag: str = ""

    model_config = {"frozen": True}


class EmbeddedChunk(BaseModel):
    """A chunk together with its embedding vector."""

    chunk: Chunk
    vector: list[float]

    model_config = {"frozen": True}


class RecordMetadata(BaseModel):
    """Metadata stored alongside each vector in the index."""

    source: str
    preview: str = Field(max_length=PREVIEW_CHARS)
    job_id: str
    sequence_index: int

    model_config = {"frozen": True}


class EmbeddingRecord(BaseModel):
    """One upsertable vector-index record, derived 1:1 from a chunk."""

    id: str
    vector: list[float]
    metadata: RecordMetadata

    model_config = {"frozen": True}


class JobPhase(str, Enum):
    PREPARED = "prepared"
    EMBEDDING = "embedding"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.COMPLETED, JobPhase.FAILED)


_ALLOWED_TRANSITIONS: dict[JobPhase, set[JobPhase]] = {
    JobPhase.PREPARED: {JobPhase.EMBEDDING, JobPhase.COMPLETED},
    JobPhase.EMBEDDING: {JobPhase.COMPLETED, JobPhase.FAILED},
    JobPhase.COMPLETED: set(),
    JobPhase.FAILED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """One end-to-end ingestion run for a single source document."""

    id: str
    source_url: str
    resolved_url: str
    phase: JobPhase = JobPhase.PREPARED
    chunk_count: int = 0
    page_count: int = 0
    records_written: int = 0
    failed_chunk_index: int | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def transition(self, phase: JobPhase) -> None:
        """Move to *phase*, refusing moves out of terminal states."""
        if phase not in _ALLOWED_TRANSITIONS[self.phase]:
            raise ValueError(f"Job {self.id}: illegal transition {self.phase.value} -> {phase.value}")
        if phase is JobPhase.COMPLETED and self.phase is JobPhase.PREPARED and self.chunk_count:
            raise ValueError(f"Job {self.id}: cannot complete without embedding {self.chunk_count} chunks")
        self.phase = phase
        self.updated_at = _utcnow()

    def fail(self, error: str, *, chunk_index: int | None = None) -> None:
        self.transition(JobPhase.FAILED)
        self.error = error
        self.failed_chunk_index = chunk_index
