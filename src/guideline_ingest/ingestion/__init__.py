"""
Ingestion — source resolution, download, extraction, chunking, embedding and
index writes.

Each step is a small component with no knowledge of the others; the job
coordinator in :mod:`guideline_ingest.jobs` strings them together.
"""
