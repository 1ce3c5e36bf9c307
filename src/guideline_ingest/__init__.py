"""
guideline_ingest — fetch a PDF by URL, chunk it, embed the chunks and upsert
them into a vector index.

Public API
----------
- :class:`JobCoordinator` — two-phase ingestion jobs.
- :func:`build_coordinator` — wire the production capabilities from settings.
- :func:`chunk_text` / :func:`resolve_source_url` — pure helpers.
"""

from guideline_ingest.container import build_coordinator
from guideline_ingest.ingestion.chunker import chunk_text
from guideline_ingest.ingestion.resolver import resolve_source_url
from guideline_ingest.jobs import JobCoordinator

__all__ = [
    "JobCoordinator",
    "build_coordinator",
    "chunk_text",
    "resolve_source_url",
]
