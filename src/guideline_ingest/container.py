"""Process-wide wiring of the ingestion capabilities."""

from __future__ import annotations

import logging

from guideline_ingest.config import Settings
from guideline_ingest.ingestion.embedder import EmbeddingBatcher, get_embedding_function
from guideline_ingest.ingestion.extractor import PdfTextExtractor
from guideline_ingest.ingestion.fetcher import DocumentFetcher
from guideline_ingest.ingestion.index_writer import ChromaIndexWriter
from guideline_ingest.jobs import JobCoordinator

logger = logging.getLogger(__name__)


def build_coordinator(cfg: Settings) -> JobCoordinator:
    """Construct the embedding and vector-index clients once and wire them up."""
    embeddings = get_embedding_function(
        cfg.embedding_provider,
        cfg.embedding_model,
        api_key=cfg.openai_api_key,
    )
    index_writer = ChromaIndexWriter(
        cfg.chroma_collection,
        host=cfg.chroma_host,
        port=cfg.chroma_port,
        distance_metric=cfg.chroma_distance,
    )
    logger.info(
        "Index writer ready: collection '%s' at %s:%d",
        cfg.chroma_collection,
        cfg.chroma_host,
        cfg.chroma_port,
    )
    return JobCoordinator(
        fetcher=DocumentFetcher(
            timeout=cfg.fetch_timeout_seconds,
            max_retries=cfg.fetch_max_retries,
            user_agent=cfg.fetch_user_agent,
            strict_signature=cfg.strict_signature,
        ),
        extractor=PdfTextExtractor(),
        batcher=EmbeddingBatcher(
            embeddings,
            batch_size=cfg.embed_batch_size,
            max_retries=cfg.embed_max_retries,
            backoff_seconds=cfg.embed_backoff_seconds,
        ),
        index_writer=index_writer,
        chunk_size=cfg.chunk_size,
        chunk_overlap=cfg.chunk_overlap,
        source_tag=cfg.source_tag,
        max_finished_jobs=cfg.max_finished_jobs,
    )
