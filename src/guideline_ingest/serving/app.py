"""FastAPI application exposing the ingestion pipeline as a REST API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from urllib.parse import urlsplit

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from guideline_ingest.errors import ConfigError, DownloadError, ExtractionError
from guideline_ingest.jobs import JobCoordinator
from guideline_ingest.models import Job

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class IngestResponse(BaseModel):
    """Acknowledgment returned once the prepare phase succeeds."""

    job_id: str = Field(alias="jobId")
    chunk_count: int = Field(alias="chunkCount")
    status: str

    model_config = {"populate_by_name": True}


class JobStatusResponse(BaseModel):
    """Current state of an ingestion job."""

    job_id: str = Field(alias="jobId")
    status: str
    chunk_count: int = Field(alias="chunkCount")
    records_written: int = Field(alias="recordsWritten")
    page_count: int = Field(alias="pageCount")
    source_url: str = Field(alias="sourceUrl")
    error: str | None = None
    failed_chunk_index: int | None = Field(default=None, alias="failedChunkIndex")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_job(cls, job: Job) -> JobStatusResponse:
        return cls(
            job_id=job.id,
            status=job.phase.value,
            chunk_count=job.chunk_count,
            records_written=job.records_written,
            page_count=job.page_count,
            source_url=job.source_url,
            error=job.error,
            failed_chunk_index=job.failed_chunk_index,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


def _is_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def create_app(coordinator: JobCoordinator | None = None) -> FastAPI:
    """Build the API.

    When *coordinator* is ``None`` the production capabilities are built
    from settings in the lifespan handler, once per process.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if coordinator is None:
            from guideline_ingest.config import settings
            from guideline_ingest.container import build_coordinator
            from guideline_ingest.log import configure_logging

            configure_logging(settings.log_level)
            app.state.coordinator = build_coordinator(settings)
        else:
            app.state.coordinator = coordinator
        logger.info("Ingestion API ready")
        yield
        logger.info("Shutting down: waiting for in-flight embedding jobs")
        await app.state.coordinator.drain()

    app = FastAPI(
        title="Guideline Ingest API",
        version="0.1.0",
        description="Fetch a PDF by URL, chunk and embed it, and upsert it into a vector index.",
        lifespan=lifespan,
    )

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe: is the vector index reachable?"""
        coordinator: JobCoordinator = request.app.state.coordinator
        if await asyncio.to_thread(coordinator.index_writer.health_check):
            return JSONResponse(status_code=200, content={"status": "ready", "index": "ok"})
        logger.warning("Readiness check failed: index '%s' unreachable", coordinator.index_writer.collection_name)
        return JSONResponse(status_code=503, content={"status": "unavailable", "index": "unreachable"})

    @app.get("/ingest", response_model=IngestResponse, response_model_by_alias=True)
    async def ingest(request: Request, document: str | None = Query(default=None)) -> IngestResponse | JSONResponse:
        """Prepare *document* synchronously and embed it in the background."""
        if not document:
            return JSONResponse(status_code=400, content={"error": "Missing 'document' query parameter"})
        if not _is_http_url(document):
            return JSONResponse(status_code=400, content={"error": f"Invalid document URL: {document!r}"})

        coordinator: JobCoordinator = request.app.state.coordinator
        try:
            job = await coordinator.submit(document)
        except DownloadError as exc:
            logger.error("Download failed for %s: %s", document, exc)
            return JSONResponse(status_code=500, content={"error": "Failed to download PDF", "details": str(exc)})
        except ExtractionError as exc:
            logger.error("Extraction failed for %s: %s", document, exc)
            return JSONResponse(status_code=500, content={"error": "Failed to parse PDF", "details": str(exc)})
        except ConfigError as exc:
            logger.error("Invalid ingestion configuration: %s", exc)
            return JSONResponse(status_code=500, content={"error": "Invalid configuration", "details": str(exc)})

        return IngestResponse(job_id=job.id, chunk_count=job.chunk_count, status=job.phase.value)

    @app.get("/jobs/{job_id}", response_model=JobStatusResponse, response_model_by_alias=True)
    async def job_status(job_id: str, request: Request) -> JobStatusResponse:
        """Return the current phase of an ingestion job."""
        job = request.app.state.coordinator.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
        return JobStatusResponse.from_job(job)

    return app


app = create_app()
