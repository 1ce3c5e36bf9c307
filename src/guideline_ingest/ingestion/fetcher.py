"""Download source documents over HTTP into memory."""

from __future__ import annotations

import logging
import time

import requests

from guideline_ingest.errors import DownloadError
from guideline_ingest.models import Document

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
_MAX_BACKOFF_SECONDS = 30

# Failures worth another attempt; anything else (bad URL, redirect loop) is final.
_RETRYABLE_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class DocumentFetcher:
    """Fetch a document's raw bytes with redirects, retries and a header check.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Extra attempts for connection errors, timeouts and 429/5xx responses.
    user_agent:
        Sent as ``User-Agent``; many file hosts reject the library default.
    strict_signature:
        Raise instead of warning when the body does not start with ``%PDF-``.
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        max_retries: int = 2,
        user_agent: str = "guideline-ingest/0.1",
        strict_signature: bool = False,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.strict_signature = strict_signature
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "application/pdf,application/octet-stream,*/*",
        }

    def fetch(self, url: str, *, source_url: str | None = None) -> Document:
        """Download *url* and return it as a validated :class:`Document`.

        *source_url* is the URL as the caller supplied it, before resolution.
        """
        resp = self._get(url)

        content = resp.content or b""
        content_type = resp.headers.get("content-type")
        logger.info("Downloaded %d bytes from %s (content-type=%s)", len(content), url, content_type)

        if len(content) < len(PDF_MAGIC):
            raise DownloadError(
                f"Downloaded file is too small to be a valid PDF ({len(content)} bytes)",
                url=url,
                status_code=resp.status_code,
            )

        header = content[: len(PDF_MAGIC)]
        valid = header == PDF_MAGIC
        if not valid:
            if self.strict_signature:
                raise DownloadError(
                    f"Downloaded file does not start with a PDF header (got {header!r})",
                    url=url,
                    status_code=resp.status_code,
                )
            logger.warning("File from %s does not have a PDF header, got %r; attempting extraction", url, header)

        return Document(
            content=content,
            source_url=source_url or url,
            resolved_url=url,
            content_type=content_type,
            has_valid_signature=valid,
        )

    def _get(self, url: str) -> requests.Response:
        last_error: str = ""
        for attempt in range(1, self.max_retries + 2):
            try:
                resp = requests.get(
                    url,
                    headers=self.headers,
                    timeout=self.timeout,
                    allow_redirects=True,
                )
            except requests.RequestException as exc:
                last_error = f"transport error: {exc}"
                if not isinstance(exc, _RETRYABLE_ERRORS) or attempt > self.max_retries:
                    raise DownloadError(f"Failed to download {url}: {last_error}", url=url) from exc
            else:
                if 200 <= resp.status_code < 300:
                    return resp
                last_error = f"HTTP {resp.status_code} {resp.reason or ''}".strip()
                if not _is_transient(resp.status_code) or attempt > self.max_retries:
                    raise DownloadError(
                        f"Failed to download {url}: {last_error}",
                        url=url,
                        status_code=resp.status_code,
                    )

            wait = min(2**attempt, _MAX_BACKOFF_SECONDS)
            logger.warning(
                "Retry %d/%d for %s (wait %ds): %s", attempt, self.max_retries, url, wait, last_error
            )
            time.sleep(wait)

        raise DownloadError(f"Failed to download {url}: {last_error}", url=url)
