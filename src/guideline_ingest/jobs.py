"""Two-phase ingestion jobs.

``submit`` runs the fast *prepare* phase (resolve → fetch → extract → chunk)
and returns as soon as the chunk count is known.  The *embed* phase
(batch → embed → upsert) is spawned as a detached asyncio task whose only
error channel is the job record and the log.

Job state machine::

    prepared ──► embedding ──► completed
        │                 └──► failed
        └──► completed          (zero chunks only)
"""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from guideline_ingest.errors import EmbeddingServiceError, IndexWriteError
from guideline_ingest.ingestion.chunker import chunk_text, validate_chunk_params
from guideline_ingest.ingestion.embedder import EmbeddingBatcher
from guideline_ingest.ingestion.extractor import PdfTextExtractor
from guideline_ingest.ingestion.fetcher import DocumentFetcher
from guideline_ingest.ingestion.index_writer import VectorIndexWriter, build_records
from guideline_ingest.ingestion.resolver import resolve_source_url
from guideline_ingest.models import Chunk, Job, JobPhase

logger = logging.getLogger(__name__)


class JobCoordinator:
    """Orchestrates ingestion jobs and keeps their state in memory.

    Parameters
    ----------
    fetcher / extractor / batcher / index_writer:
        Process-wide capabilities, built once at start-up.
    chunk_size / chunk_overlap:
        Chunking window, validated before any I/O.
    source_tag:
        Written into every record's ``source`` metadata.
    max_finished_jobs:
        Completed or failed jobs kept for status queries; the oldest are
        evicted first. In-flight jobs are never evicted.
    """

    def __init__(
        self,
        *,
        fetcher: DocumentFetcher,
        extractor: PdfTextExtractor,
        batcher: EmbeddingBatcher,
        index_writer: VectorIndexWriter,
        chunk_size: int = 800,
        chunk_overlap: int = 100,
        source_tag: str = "",
        max_finished_jobs: int = 1000,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.batcher = batcher
        self.index_writer = index_writer
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.source_tag = source_tag
        self.max_finished_jobs = max_finished_jobs
        self._jobs: dict[str, Job] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # -- public API -----------------------------------------------------------

    async def submit(self, url: str) -> Job:
        """Run the prepare phase for *url* and schedule the embed phase.

        Raises :class:`~guideline_ingest.errors.ConfigError`,
        :class:`~guideline_ingest.errors.DownloadError` or
        :class:`~guideline_ingest.errors.ExtractionError`; no job is
        registered in that case.
        """
        validate_chunk_params(self.chunk_size, self.chunk_overlap)

        job_id = uuid4().hex
        resolved = resolve_source_url(url)
        logger.info("Job %s: starting for %s (resolved %s)", job_id, url, resolved)

        document = await asyncio.to_thread(self.fetcher.fetch, resolved, source_url=url)
        extracted = await asyncio.to_thread(self.extractor.extract, document)
        del document

        chunks = chunk_text(
            extracted.text,
            size=self.chunk_size,
            overlap=self.chunk_overlap,
            source_tag=self.source_tag,
        )
        logger.info("Job %s: split into %d chunks", job_id, len(chunks))

        job = Job(
            id=job_id,
            source_url=url,
            resolved_url=resolved,
            chunk_count=len(chunks),
            page_count=extracted.page_count,
        )
        self._jobs[job_id] = job

        if not chunks:
            job.transition(JobPhase.COMPLETED)
            logger.info("Job %s: document contained no text to embed", job_id)
            snapshot = job.model_copy()
            self._evict_finished()
            return snapshot

        snapshot = job.model_copy()
        task = asyncio.create_task(self._run_embed_phase(job, chunks), name=f"embed-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return snapshot

    def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy() if job is not None else None

    def jobs(self) -> list[Job]:
        return [job.model_copy() for job in self._jobs.values()]

    async def drain(self) -> None:
        """Wait for every in-flight embed phase to finish."""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.gather(*pending)

    async def run(self, url: str) -> Job:
        """Submit *url* and wait for its embed phase; used by the CLI."""
        job = await self.submit(url)
        await self.drain()
        return self.get(job.id) or job

    def _evict_finished(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.phase.is_terminal]
        excess = len(finished) - self.max_finished_jobs
        for job_id in finished[: max(excess, 0)]:
            del self._jobs[job_id]
        if excess > 0:
            logger.debug("Evicted %d finished jobs", excess)

    # -- embed phase ----------------------------------------------------------

    async def _run_embed_phase(self, job: Job, chunks: list[Chunk]) -> None:
        job.transition(JobPhase.EMBEDDING)
        logger.info("Job %s: embedding %d chunks", job.id, len(chunks))
        try:
            async for embedded in self.batcher.embed_batches(chunks):
                records = build_records(job.id, embedded)
                await asyncio.to_thread(self.index_writer.upsert, records)
                job.records_written += len(records)
        except EmbeddingServiceError as exc:
            logger.exception(
                "Job %s: embedding failed at chunk %s (status=%s)",
                job.id,
                exc.sequence_index,
                exc.status_code,
            )
            job.fail(str(exc), chunk_index=exc.sequence_index)
        except IndexWriteError as exc:
            first = exc.record_ids[0] if exc.record_ids else None
            logger.exception("Job %s: index write failed (first record %s)", job.id, first)
            job.fail(str(exc), chunk_index=_index_from_record_id(first))
        except Exception as exc:
            logger.exception("Job %s: unexpected error during embed phase", job.id)
            job.fail(f"{type(exc).__name__}: {exc}")
        else:
            job.transition(JobPhase.COMPLETED)
            logger.info("Job %s: uploaded %d chunks", job.id, job.records_written)
        self._evict_finished()


def _index_from_record_id(rid: str | None) -> int | None:
    if not rid:
        return None
    _, _, tail = rid.rpartition(":")
    return int(tail) if tail.isdigit() else None
