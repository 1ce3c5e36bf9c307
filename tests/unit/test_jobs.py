"""Unit tests for the two-phase job coordinator."""

from __future__ import annotations

import asyncio
import threading

import pytest
from fakes import FakeEmbeddings, FakeIndexWriter, StubExtractor, StubFetcher, make_coordinator

from guideline_ingest.errors import ConfigError, DownloadError, ExtractionError
from guideline_ingest.ingestion.chunker import chunk_text
from guideline_ingest.models import Job, JobPhase

# size=10, overlap=2 → 82 characters produce exactly 10 chunks
TEXT = "".join(chr(ord("a") + i % 26) for i in range(82))


def _submit_and_drain(coordinator, url: str = "https://example.com/guide.pdf") -> tuple[Job, Job]:
    async def go() -> tuple[Job, Job]:
        submitted = await coordinator.submit(url)
        await coordinator.drain()
        return submitted, coordinator.get(submitted.id)

    return asyncio.run(go())


class TestPreparePhase:
    def test_returns_prepared_job_with_chunk_count(self) -> None:
        coordinator = make_coordinator(text=TEXT)
        submitted, _ = _submit_and_drain(coordinator)

        assert submitted.phase is JobPhase.PREPARED
        assert submitted.chunk_count == 10
        assert submitted.page_count == 1

    def test_url_is_resolved_before_fetch(self) -> None:
        fetcher = StubFetcher()
        coordinator = make_coordinator(text=TEXT, fetcher=fetcher)
        submitted, _ = _submit_and_drain(coordinator, "https://www.dropbox.com/s/abc/guide.pdf?dl=0")

        assert fetcher.urls == ["https://www.dropbox.com/s/abc/guide.pdf?dl=1"]
        assert submitted.source_url == "https://www.dropbox.com/s/abc/guide.pdf?dl=0"
        assert submitted.resolved_url == "https://www.dropbox.com/s/abc/guide.pdf?dl=1"

    def test_empty_document_completes_without_embedding(self) -> None:
        embeddings = FakeEmbeddings()
        index = FakeIndexWriter()
        coordinator = make_coordinator(text="", embeddings=embeddings, index_writer=index)
        submitted, final = _submit_and_drain(coordinator)

        assert submitted.phase is JobPhase.COMPLETED
        assert submitted.chunk_count == 0
        assert final.phase is JobPhase.COMPLETED
        assert embeddings.calls == []
        assert index.upsert_calls == []

    @pytest.mark.parametrize(
        ("fetcher", "extractor", "error"),
        [
            (StubFetcher(error=DownloadError("HTTP 404")), StubExtractor(text=TEXT), DownloadError),
            (StubFetcher(), StubExtractor(error=ExtractionError("bad xref")), ExtractionError),
        ],
    )
    def test_prepare_errors_propagate_and_register_nothing(self, fetcher, extractor, error) -> None:
        coordinator = make_coordinator(fetcher=fetcher, extractor=extractor)
        with pytest.raises(error):
            asyncio.run(coordinator.submit("https://example.com/guide.pdf"))
        assert coordinator.jobs() == []

    def test_invalid_chunk_params_rejected_before_io(self) -> None:
        fetcher = StubFetcher()
        coordinator = make_coordinator(text=TEXT, fetcher=fetcher, chunk_size=10, chunk_overlap=10)

        with pytest.raises(ConfigError):
            asyncio.run(coordinator.submit("https://example.com/guide.pdf"))
        assert fetcher.urls == []


class TestEmbedPhase:
    def test_successful_job_upserts_every_chunk(self) -> None:
        index = FakeIndexWriter()
        coordinator = make_coordinator(text=TEXT, index_writer=index, batch_size=3)
        submitted, final = _submit_and_drain(coordinator)

        assert final.phase is JobPhase.COMPLETED
        assert final.records_written == 10
        assert final.error is None
        assert sorted(index.records) == sorted(f"{submitted.id}:{i}" for i in range(10))
        # one upsert per batch, in batch order
        assert [len(ids) for ids in index.upsert_calls] == [3, 3, 3, 1]
        assert index.records[f"{submitted.id}:0"].metadata.source == "VA Guide"

    def test_partial_failure_keeps_committed_batches_only(self) -> None:
        chunks = chunk_text(TEXT, size=10, overlap=2)
        embeddings = FakeEmbeddings(fail_when=lambda t: t == chunks[7].text)
        index = FakeIndexWriter()
        coordinator = make_coordinator(text=TEXT, embeddings=embeddings, index_writer=index, batch_size=3)

        submitted, final = _submit_and_drain(coordinator)

        assert final.phase is JobPhase.FAILED
        assert final.failed_chunk_index == 7
        assert "chunk 7" in final.error
        assert sorted(index.records) == sorted(f"{submitted.id}:{i}" for i in range(6))
        assert chunks[9].text not in embeddings.calls

    def test_index_failure_marks_job_failed(self) -> None:
        coordinator = make_coordinator(text=TEXT, index_writer=FakeIndexWriter(fail=True))
        _, final = _submit_and_drain(coordinator)

        assert final.phase is JobPhase.FAILED
        assert final.failed_chunk_index == 0
        assert "index unavailable" in final.error

    def test_embed_failure_is_logged_with_job_id(self, caplog: pytest.LogCaptureFixture) -> None:
        embeddings = FakeEmbeddings(fail_when=lambda t: True)
        coordinator = make_coordinator(text=TEXT, embeddings=embeddings)
        submitted, _ = _submit_and_drain(coordinator)

        assert f"Job {submitted.id}: embedding failed at chunk 0" in caplog.text

    def test_phase_is_embedding_while_in_flight(self) -> None:
        async def go() -> tuple[JobPhase, JobPhase]:
            coordinator = make_coordinator(text=TEXT)
            job = await coordinator.submit("https://example.com/guide.pdf")
            await asyncio.sleep(0)
            during = coordinator.get(job.id).phase
            await coordinator.drain()
            return during, coordinator.get(job.id).phase

        during, after = asyncio.run(go())
        assert during is JobPhase.EMBEDDING
        assert after is JobPhase.COMPLETED


class TestConcurrentJobs:
    def test_concurrent_jobs_never_collide_on_record_ids(self) -> None:
        index = FakeIndexWriter()
        coordinator = make_coordinator(text=TEXT, index_writer=index)

        async def go() -> list[Job]:
            jobs = await asyncio.gather(
                coordinator.submit("https://example.com/a.pdf"),
                coordinator.submit("https://example.com/b.pdf"),
            )
            await coordinator.drain()
            return list(jobs)

        a, b = asyncio.run(go())

        assert a.id != b.id
        assert len(index.records) == 20
        assert {coordinator.get(a.id).phase, coordinator.get(b.id).phase} == {JobPhase.COMPLETED}

    def test_one_failing_job_does_not_affect_another(self) -> None:
        embeddings = FakeEmbeddings(fail_when=lambda t: t.startswith("zz"))
        fail_text = "zz" + TEXT[2:]
        coordinator = make_coordinator(text=TEXT, embeddings=embeddings)
        failing = make_coordinator(text=fail_text, embeddings=embeddings)

        _, ok = _submit_and_drain(coordinator)
        _, bad = _submit_and_drain(failing)

        assert ok.phase is JobPhase.COMPLETED
        assert bad.phase is JobPhase.FAILED

    def test_unknown_job_returns_none(self) -> None:
        assert make_coordinator().get("nope") is None


class TestJobRegistry:
    def test_oldest_finished_jobs_are_evicted(self) -> None:
        coordinator = make_coordinator(text=TEXT, max_finished_jobs=2)

        async def go() -> list[str]:
            ids = []
            for name in ("a", "b", "c", "d"):
                job = await coordinator.submit(f"https://example.com/{name}.pdf")
                await coordinator.drain()
                ids.append(job.id)
            return ids

        a, b, c, d = asyncio.run(go())

        assert coordinator.get(a) is None
        assert coordinator.get(b) is None
        assert [job.id for job in coordinator.jobs()] == [c, d]

    def test_in_flight_jobs_are_never_evicted(self) -> None:
        gate = threading.Event()

        class GatedIndexWriter(FakeIndexWriter):
            def upsert(self, records) -> None:
                gate.wait(timeout=5)
                super().upsert(records)

        coordinator = make_coordinator(text=TEXT, index_writer=GatedIndexWriter(), max_finished_jobs=0)

        async def go() -> tuple[str, str, str, list[str], list[str]]:
            first = await coordinator.submit("https://example.com/a.pdf")
            second = await coordinator.submit("https://example.com/b.pdf")
            while_running = [job.id for job in coordinator.jobs()]
            gate.set()
            await coordinator.drain()
            third = await coordinator.submit("https://example.com/c.pdf")
            after_finish = [job.id for job in coordinator.jobs()]
            await coordinator.drain()
            return first.id, second.id, third.id, while_running, after_finish

        first, second, third, while_running, after_finish = asyncio.run(go())

        assert while_running == [first, second]
        assert after_finish == [third]


class TestJobModel:
    def test_terminal_states_are_final(self) -> None:
        job = Job(id="j", source_url="u", resolved_url="u", chunk_count=3)
        job.transition(JobPhase.EMBEDDING)
        job.transition(JobPhase.COMPLETED)
        with pytest.raises(ValueError, match="illegal transition"):
            job.transition(JobPhase.FAILED)

    def test_cannot_skip_embedding_with_pending_chunks(self) -> None:
        job = Job(id="j", source_url="u", resolved_url="u", chunk_count=3)
        with pytest.raises(ValueError, match="cannot complete"):
            job.transition(JobPhase.COMPLETED)

    def test_fail_records_error_and_chunk(self) -> None:
        job = Job(id="j", source_url="u", resolved_url="u", chunk_count=3)
        job.transition(JobPhase.EMBEDDING)
        job.fail("boom", chunk_index=2)
        assert (job.phase, job.error, job.failed_chunk_index) == (JobPhase.FAILED, "boom", 2)
