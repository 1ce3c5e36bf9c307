"""Command-line entry point.

Ingest one document in the foreground
-------------------------------------
    guideline-ingest ingest "https://www.dropbox.com/s/abc/guide.pdf?dl=0"

Serve the API
-------------
    guideline-ingest serve --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from guideline_ingest.errors import IngestError
from guideline_ingest.models import JobPhase


def _ingest(url: str) -> int:
    from guideline_ingest.config import settings
    from guideline_ingest.container import build_coordinator

    coordinator = build_coordinator(settings)
    try:
        job = asyncio.run(coordinator.run(url))
    except IngestError as exc:
        print(json.dumps({"error": type(exc).__name__, "details": str(exc)}), file=sys.stderr)
        return 1
    print(job.model_dump_json(indent=2))
    return 0 if job.phase is JobPhase.COMPLETED else 1


def _serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("guideline_ingest.serving.app:app", host=host, port=port)
    return 0


def main(argv: list[str] | None = None) -> int:
    from guideline_ingest.config import settings
    from guideline_ingest.log import configure_logging

    parser = argparse.ArgumentParser(prog="guideline-ingest", description="PDF ingestion pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Fetch, chunk, embed and index one document")
    ingest.add_argument("url", help="Document URL (Dropbox share links are resolved)")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8080)

    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    if args.command == "ingest":
        return _ingest(args.url)
    return _serve(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
