"""Fixed-window text chunking."""

from __future__ import annotations

from guideline_ingest.errors import ConfigError
from guideline_ingest.models import Chunk

DEFAULT_CHUNK_SIZE = 800
DEFAULT_CHUNK_OVERLAP = 100


def validate_chunk_params(size: int, overlap: int) -> None:
    """Raise :class:`ConfigError` unless ``0 <= overlap < size``."""
    if size <= 0:
        raise ConfigError(f"chunk_size ({size}) must be > 0")
    if overlap < 0:
        raise ConfigError(f"chunk_overlap ({overlap}) must be >= 0")
    if overlap >= size:
        raise ConfigError(f"chunk_overlap ({overlap}) must be < chunk_size ({size})")


def chunk_text(
    text: str,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
    source_tag: str = "",
) -> list[Chunk]:
    """Split *text* into overlapping windows of at most *size* characters.

    Parameters
    ----------
    text:
        Extracted document text.
    size:
        Maximum number of characters per chunk.
    overlap:
        Number of characters shared by consecutive chunks.
    source_tag:
        Copied onto every chunk.

    Returns
    -------
    list[Chunk]
        Chunk *i* starts at ``i * (size - overlap)``; only the last one may
        be shorter than *size*.  Empty text yields an empty list.
    """
    validate_chunk_params(size, overlap)
    if not text:
        return []

    step = size - overlap
    # The last window is the first one that reaches the end of the text.
    last_start = max(len(text) - overlap, 1)
    return [
        Chunk(text=text[start : start + size], sequence_index=idx, source_tag=source_tag)
        for idx, start in enumerate(range(0, last_start, step))
    ]
