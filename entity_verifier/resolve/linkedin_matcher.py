"""LinkedIn profile discovery and scoring.

Searches for a person's public profile and scores each hit by how much of
the known identity (name, employer, title) appears in the result title and
snippet:

  +50  full name present
  +30  otherwise first and last name both present
  +10  otherwise last name only
  +30  full company name present
  +15  otherwise per significant company word (> 3 chars) present
  +20  job title present
  +5..0 position bonus, ``max(0, 5 - result_index)``

The top hit is accepted only at ``linkedin_min_confidence`` (40) or above.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from entity_verifier.config import settings
from entity_verifier.models import LinkedInMatch, ProfileCandidate
from entity_verifier.results import Failed, Found, NotFound

logger = logging.getLogger(__name__)

PROFILE_PATH_RE = re.compile(r"linkedin\.com/in/[^/?#\s]+", re.IGNORECASE)
_PROFILE_URL_RE = re.compile(
    r"(?:https?://)?(?:[a-z]{2,3}\.)?linkedin\.com/in/[A-Za-z0-9_%\-]+/?",
    re.IGNORECASE,
)


def is_profile_url(url: str) -> bool:
    return bool(url and PROFILE_PATH_RE.search(url))


def extract_linkedin_url(text: str) -> Optional[str]:
    """First LinkedIn profile URL mentioned in free text, normalised to https."""
    if not text:
        return None
    match = _PROFILE_URL_RE.search(text)
    if not match:
        return None
    url = match.group(0).rstrip("/")
    if not url.lower().startswith("http"):
        url = f"https://{url}"
    return url


def build_exact_query(first: str, last: str, company: str, title: str = "") -> str:
    parts = [f'"{first} {last}"']
    if company:
        parts.append(f'"{company}"')
    if title:
        parts.append(f'"{title}"')
    parts.append("site:linkedin.com/in")
    return " ".join(parts)


def build_loose_query(first: str, last: str, company: str, title: str = "") -> str:
    parts = [first, last, company, title, "site:linkedin.com/in"]
    return " ".join(p for p in parts if p)


def score_profile_result(
    result: dict[str, Any],
    index: int,
    first_name: str,
    last_name: str,
    company: str,
    title: str = "",
) -> ProfileCandidate:
    """Score one search hit. Pure; the reasons list is the audit trail."""
    text = f"{result.get('title', '')} {result.get('snippet', '')}".lower()
    first = first_name.lower().strip()
    last = last_name.lower().strip()
    full_name = f"{first} {last}".strip()
    score = 0
    reasons: list[str] = []

    # Name
    if full_name and full_name in text:
        score += 50
        reasons.append("Full name match (+50)")
    elif first and last and first in text and last in text:
        score += 30
        reasons.append("First and last name present (+30)")
    elif last and last in text:
        score += 10
        reasons.append("Last name only (+10)")

    # Employer
    company_lower = (company or "").lower().strip()
    if company_lower:
        if company_lower in text:
            score += 30
            reasons.append("Company name match (+30)")
        else:
            for word in company_lower.split():
                if len(word) > 3 and word in text:
                    score += 15
                    reasons.append(f"Company word '{word}' (+15)")

    # Title
    title_lower = (title or "").lower().strip()
    if title_lower and title_lower in text:
        score += 20
        reasons.append("Title match (+20)")

    position_bonus = max(0, 5 - index)
    if position_bonus:
        score += position_bonus
        reasons.append(f"Position bonus (+{position_bonus})")

    return ProfileCandidate(
        url=result.get("link", ""),
        score=score,
        reasons=tuple(reasons),
    )


def score_profile_results(
    results: list[dict[str, Any]],
    first_name: str,
    last_name: str,
    company: str,
    title: str = "",
) -> list[ProfileCandidate]:
    """Score every profile-path hit and sort best-first."""
    candidates = [
        score_profile_result(r, i, first_name, last_name, company, title)
        for i, r in enumerate(results)
        if is_profile_url(r.get("link", ""))
    ]
    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def select_best_profile(
    candidates: list[ProfileCandidate],
    min_score: int | None = None,
) -> Optional[LinkedInMatch]:
    threshold = settings.linkedin_min_confidence if min_score is None else min_score
    if not candidates:
        return None
    best = candidates[0]
    if best.score < threshold:
        return None
    return LinkedInMatch(
        url=best.url,
        company_match=any(r.startswith("Company") for r in best.reasons),
        title_match=any(r.startswith("Title") for r in best.reasons),
        score=best.score,
        reasons=best.reasons,
    )


class LinkedInMatcher:
    """Finds and validates a candidate's LinkedIn profile via web search."""

    def __init__(self, search_client, min_score: int | None = None):
        self.search_client = search_client
        self.min_score = (
            settings.linkedin_min_confidence if min_score is None else min_score
        )

    async def find_profile(
        self,
        first_name: str,
        last_name: str,
        company: str,
        title: str = "",
    ) -> Optional[LinkedInMatch]:
        query = build_exact_query(first_name, last_name, company, title)
        result = await self.search_client.search_results(query, num=10)
        if isinstance(result, NotFound):
            query = build_loose_query(first_name, last_name, company, title)
            logger.info("Exact LinkedIn query empty, retrying loose: %s", query)
            result = await self.search_client.search_results(query, num=10)
        if isinstance(result, Failed):
            logger.info("LinkedIn search failed for %s %s: %s", first_name, last_name, result.reason)
            return None
        results = result.data if isinstance(result, Found) else []

        candidates = score_profile_results(results, first_name, last_name, company, title)
        match = select_best_profile(candidates, self.min_score)
        if match is None:
            best = candidates[0].score if candidates else None
            logger.info(
                "No LinkedIn profile accepted for %s %s (best score %s, %d candidates)",
                first_name, last_name, best, len(candidates),
            )
            return None

        logger.info(
            "LinkedIn profile for %s %s: %s (score=%d, %s)",
            first_name, last_name, match.url, match.score, "; ".join(match.reasons),
        )
        return match
