"""Error taxonomy for the ingestion pipeline.

Prepare-phase errors (:class:`ConfigError`, :class:`DownloadError`,
:class:`ExtractionError`) reach the caller synchronously.  Embed-phase errors
(:class:`EmbeddingServiceError`, :class:`IndexWriteError`) only ever mark the
job as failed and are logged.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(IngestError):
    """Invalid chunking / batching parameters, rejected before any I/O."""


class DownloadError(IngestError):
    """The source document could not be retrieved or is not plausibly a PDF."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractionError(IngestError):
    """The document bytes could not be decoded into text."""


class EmbeddingServiceError(IngestError):
    """An embedding call failed for a specific chunk."""

    def __init__(
        self,
        message: str,
        *,
        sequence_index: int | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.sequence_index = sequence_index
        self.status_code = status_code


class IndexWriteError(IngestError):
    """The vector index rejected an upsert."""

    def __init__(self, message: str, *, record_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.record_ids = record_ids or []
