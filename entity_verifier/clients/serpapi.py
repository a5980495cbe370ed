"""SerpAPI web search client.

Used by the domain researcher and the LinkedIn matcher. A missing API key,
HTTP error or malformed payload never raises: ``search_results`` reports
``Failed`` and ``search`` returns an empty list.

API docs: https://serpapi.com/search-api
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from entity_verifier.config import settings
from entity_verifier.results import Failed, Found, LayerResult, NotFound

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search"


def _normalize_result(result: dict[str, Any]) -> dict[str, Any]:
    """Extract the fields we score on from a SerpAPI organic result."""
    return {
        "title": result.get("title", "") or "",
        "link": result.get("link", "") or "",
        "snippet": result.get("snippet", "") or "",
        "position": result.get("position"),
    }


class SerpAPIClient:
    """Async client for SerpAPI's Google engine."""

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        self.api_key = api_key or settings.serpapi_api_key
        self.timeout = timeout or settings.search_timeout_seconds
        if not self.api_key:
            logger.warning("SerpAPI key not configured – web search disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search_results(
        self,
        query: str,
        num: int = 10,
        engine: str = "google",
    ) -> LayerResult[list[dict[str, Any]]]:
        """Run a web search and tag the outcome.

        ``Found`` carries normalised organic results, ``NotFound`` means the
        search ran but returned nothing, ``Failed`` covers missing
        credentials, HTTP errors, timeouts and unparsable payloads.
        """
        if not self.api_key:
            return Failed("SerpAPI key not configured")

        params = {
            "q": query,
            "api_key": self.api_key,
            "engine": engine,
            "num": num,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(SERPAPI_URL, params=params)
        except httpx.TimeoutException:
            logger.warning("SerpAPI timed out for: %s", query)
            return Failed("timeout")
        except Exception:
            logger.exception("SerpAPI search failed for: %s", query)
            return Failed("request error")

        if resp.status_code in (401, 403):
            logger.warning("SerpAPI auth failed – check API key")
            return Failed(f"HTTP {resp.status_code}")
        if resp.status_code == 429:
            logger.warning("SerpAPI rate limited")
            return Failed("HTTP 429")
        if resp.status_code != 200:
            logger.warning(
                "SerpAPI error %d: %s", resp.status_code, resp.text[:200]
            )
            return Failed(f"HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            logger.warning("SerpAPI returned a non-JSON body for: %s", query)
            return Failed("malformed response")

        if not isinstance(data, dict):
            return Failed("malformed response")
        if data.get("error"):
            # SerpAPI reports "no results" through the error field too
            error = str(data["error"])
            if "hasn't returned any results" in error:
                return NotFound(error)
            logger.warning("SerpAPI error for %s: %s", query, error)
            return Failed(error)

        organic = data.get("organic_results") or []
        if not organic:
            return NotFound("no organic results")
        return Found([_normalize_result(r) for r in organic if isinstance(r, dict)])

    async def search(
        self,
        query: str,
        num: int = 10,
        engine: str = "google",
    ) -> list[dict[str, Any]]:
        """Run a web search. Returns a list of organic result dicts."""
        result = await self.search_results(query, num=num, engine=engine)
        if isinstance(result, Found):
            return result.data
        return []
