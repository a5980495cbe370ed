"""Page fetch client with exponential-backoff retries.

``fetch`` returns the raw HTML or ``""`` when the page cannot be retrieved;
callers treat the empty string as "no content", never as an error.
Retries up to ``fetch_max_attempts`` on timeouts, transport errors, 429 and
5xx. 401/403/404 are permanent and stop immediately.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from entity_verifier.config import settings

logger = logging.getLogger(__name__)

PERMANENT_FAILURE_CODES = frozenset({401, 403, 404})

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; EntityVerifier/1.0; "
        "+https://example.com/bot)"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class PageFetcher:
    """Async HTTP fetcher for third-party pages."""

    def __init__(
        self,
        timeout: float | None = None,
        head_timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.head_timeout = head_timeout or settings.head_timeout_seconds
        self.max_attempts = max(1, max_attempts or settings.fetch_max_attempts)
        self.backoff_seconds = (
            settings.fetch_backoff_seconds if backoff_seconds is None else backoff_seconds
        )

    async def fetch(self, url: str) -> str:
        """Fetch a page. Returns raw HTML, or ``""`` on unrecoverable failure."""
        if not url or not url.startswith("http"):
            logger.info("Skipping fetch of invalid URL: %r", url)
            return ""

        for attempt in range(self.max_attempts):
            retryable = False
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=True,
                    headers=DEFAULT_HEADERS,
                ) as client:
                    resp = await client.get(url)

                if resp.status_code == 200:
                    logger.info("Fetched %d characters from %s", len(resp.text), url)
                    return resp.text

                if resp.status_code in PERMANENT_FAILURE_CODES:
                    logger.info(
                        "Fetch of %s returned %d – not retrying",
                        url, resp.status_code,
                    )
                    return ""

                if resp.status_code == 429 or resp.status_code >= 500:
                    retryable = True
                    logger.warning(
                        "Fetch of %s returned %d (attempt %d/%d)",
                        url, resp.status_code, attempt + 1, self.max_attempts,
                    )
                else:
                    logger.info("Fetch of %s returned %d", url, resp.status_code)
                    return ""

            except httpx.TimeoutException:
                retryable = True
                logger.warning(
                    "Timeout fetching %s (attempt %d/%d)",
                    url, attempt + 1, self.max_attempts,
                )
            except httpx.TransportError as exc:
                retryable = True
                logger.warning(
                    "Transport error fetching %s: %s (attempt %d/%d)",
                    url, exc, attempt + 1, self.max_attempts,
                )
            except Exception:
                logger.exception("Fetch of %s failed", url)
                return ""

            if retryable and attempt < self.max_attempts - 1:
                wait = self.backoff_seconds * (2 ** attempt)  # 1s, 2s, 4s ...
                await asyncio.sleep(wait)

        logger.warning("All %d fetch attempts exhausted for %s", self.max_attempts, url)
        return ""

    async def head(self, url: str) -> bool:
        """Return True when the URL answers with a non-error status.

        Servers that reject HEAD with 405 get a single GET instead.
        """
        if not url or not url.startswith("http"):
            return False
        try:
            async with httpx.AsyncClient(
                timeout=self.head_timeout,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            ) as client:
                resp = await client.head(url)
                if resp.status_code == 405:
                    resp = await client.get(url)
            return resp.status_code < 400
        except httpx.HTTPError as exc:
            logger.info("Reachability check failed for %s: %s", url, exc)
            return False
        except Exception:
            logger.exception("Reachability check crashed for %s", url)
            return False
