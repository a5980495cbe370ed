"""Composite candidate verification.

One pass over the sub-checks, each contributing points and an audit note:

  +15  LinkedIn profile found
  +10  LinkedIn company match
  +5   LinkedIn title match
  +5   bio URL well-formed
  +10  bio URL reachable
  +20  email pattern inferred for the company domain
  -20  duplicate: exact name, same company
  -10  duplicate: exact name, different company
  -15  duplicate: fuzzy name
  +15  no duplicate (uniqueness bonus)
  +10  employment current via LinkedIn, else +5 via reachable bio
  +10  title consistency (LinkedIn title match or a stated current title)

Confidence is ``clamp(points / 100, 0, 1)``. A duplicate is always classified
``duplicate``; otherwise >= 0.85 is ``verified``, < 0.3 ``rejected`` and the
rest ``pending_review``. Sub-checks own their retries; a sub-check that
raises contributes zero points and a note, never aborting the run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from entity_verifier.clients.fetcher import PageFetcher
from entity_verifier.clients.serpapi import SerpAPIClient
from entity_verifier.config import settings
from entity_verifier.models import (
    CandidateStub,
    DuplicateMatchType,
    EmailPattern,
    EmploymentStatus,
    LinkedInMatch,
    VerificationResult,
    VerificationStatus,
)
from entity_verifier.resolve.domain_research import DomainResearcher, generate_email_address
from entity_verifier.resolve.duplicates import check_duplicate
from entity_verifier.resolve.linkedin_matcher import LinkedInMatcher

logger = logging.getLogger(__name__)

VERIFIED_THRESHOLD = 0.85
REJECTED_THRESHOLD = 0.3

DUPLICATE_PENALTIES: dict[DuplicateMatchType, int] = {
    DuplicateMatchType.EXACT_NAME_COMPANY: -20,
    DuplicateMatchType.EXACT_NAME: -10,
    DuplicateMatchType.FUZZY_NAME: -15,
}
UNIQUENESS_BONUS = 15


def is_valid_url_format(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and "." in (parsed.hostname or "")


def classify_score(confidence: float, is_duplicate: bool) -> VerificationStatus:
    if is_duplicate:
        return VerificationStatus.DUPLICATE
    if confidence >= VERIFIED_THRESHOLD:
        return VerificationStatus.VERIFIED
    if confidence < REJECTED_THRESHOLD:
        return VerificationStatus.REJECTED
    return VerificationStatus.PENDING_REVIEW


def points_to_confidence(points: int) -> float:
    return min(1.0, max(0.0, points / 100))


class _Ledger:
    """Ordered point accumulator; notes become the audit trail."""

    def __init__(self):
        self.points = 0
        self.notes: list[str] = []

    def add(self, delta: int, note: str) -> None:
        self.points += delta
        if delta:
            self.notes.append(f"{note} ({delta:+d})")
        else:
            self.notes.append(note)


class CandidateVerifier:
    """Runs every verification sub-check for a candidate stub."""

    def __init__(
        self,
        matcher: Optional[LinkedInMatcher] = None,
        researcher: Optional[DomainResearcher] = None,
        fetcher: Optional[PageFetcher] = None,
        uniqueness_bonus_on_empty_population: bool | None = None,
    ):
        self.matcher = matcher
        self.researcher = researcher
        self.fetcher = fetcher
        self.uniqueness_bonus_on_empty_population = (
            settings.uniqueness_bonus_on_empty_population
            if uniqueness_bonus_on_empty_population is None
            else uniqueness_bonus_on_empty_population
        )

    # -- I/O sub-checks ----------------------------------------------------

    async def _find_linkedin(self, stub: CandidateStub) -> Optional[LinkedInMatch]:
        if self.matcher is None:
            return None
        return await self.matcher.find_profile(
            stub.first_name, stub.last_name, stub.current_company, stub.current_title,
        )

    async def _check_bio(self, url: str) -> bool:
        if self.fetcher is None:
            return False
        return await self.fetcher.head(url)

    async def _infer_pattern(self, stub: CandidateStub, domain: str) -> Optional[EmailPattern]:
        if self.researcher is None:
            return None
        return await self.researcher.infer_email_pattern(stub.current_company or domain, domain)

    @staticmethod
    async def _skip() -> None:
        return None

    # -- Entry point -------------------------------------------------------

    async def verify(
        self,
        stub: CandidateStub,
        population: Iterable[Any] = (),
    ) -> VerificationResult:
        population = list(population)
        ledger = _Ledger()
        fields: dict[str, Any] = {}

        bio_url = (stub.bio_url or "").strip()
        bio_valid = bool(bio_url) and is_valid_url_format(bio_url)
        domain = (stub.company_domain or "").strip().lower()

        linkedin, bio_reachable, pattern = await asyncio.gather(
            self._find_linkedin(stub),
            self._check_bio(bio_url) if bio_valid else self._skip(),
            self._infer_pattern(stub, domain) if domain else self._skip(),
            return_exceptions=True,
        )

        # LinkedIn
        if isinstance(linkedin, BaseException):
            logger.warning("LinkedIn check failed for %s: %s", stub.full_name, linkedin)
            ledger.add(0, f"LinkedIn check failed: {linkedin}")
            linkedin = None
        if linkedin is not None:
            fields.update(
                linkedin_exists=True,
                linkedin_url=linkedin.url,
                linkedin_company_match=linkedin.company_match,
                linkedin_title_match=linkedin.title_match,
            )
            ledger.add(15, f"LinkedIn profile found: {linkedin.url}")
            if linkedin.company_match:
                ledger.add(10, "LinkedIn company match")
            if linkedin.title_match:
                ledger.add(5, "LinkedIn title match")
        else:
            ledger.add(0, "LinkedIn profile not found")

        # Bio URL
        if isinstance(bio_reachable, BaseException):
            logger.warning("Bio URL check failed for %s: %s", bio_url, bio_reachable)
            bio_reachable = False
        bio_reachable = bool(bio_reachable)
        if bio_url:
            fields["bio_url_valid"] = bio_valid
            if bio_valid:
                ledger.add(5, "Bio URL valid format")
                if bio_reachable:
                    fields["bio_url_accessible"] = True
                    ledger.add(10, "Bio URL reachable")
                else:
                    ledger.add(0, "Bio URL not reachable")
            else:
                ledger.add(0, f"Bio URL invalid format: {bio_url}")
        else:
            ledger.add(0, "No bio URL provided")

        # Email pattern
        if isinstance(pattern, BaseException):
            logger.warning("Email pattern inference failed for %s: %s", domain, pattern)
            pattern = None
        if domain:
            if pattern is not None:
                suggested = generate_email_address(stub.first_name, stub.last_name, domain, pattern)
                fields.update(
                    email_pattern_match=True,
                    email_pattern=pattern.value,
                    suggested_email=suggested,
                )
                ledger.add(20, f"Email pattern {pattern.value} inferred for {domain}")
            else:
                ledger.add(0, f"Email pattern could not be inferred for {domain}")
        else:
            ledger.add(0, "No company domain provided")

        # Duplicates
        dup = check_duplicate(stub.full_name, stub.current_company, population)
        if dup.is_duplicate:
            fields.update(is_duplicate=True, duplicate_match_score=dup.match_score)
            ledger.add(
                DUPLICATE_PENALTIES[dup.match_type],
                f"Duplicate ({dup.match_type.value}, score {dup.match_score:.2f})",
            )
        elif population or self.uniqueness_bonus_on_empty_population:
            ledger.add(UNIQUENESS_BONUS, "No duplicates found")
        else:
            ledger.add(0, "No existing records to compare against")

        # Employment
        if linkedin is not None:
            fields.update(employment_status=EmploymentStatus.CURRENT, employment_source="linkedin")
            ledger.add(10, "Employment current via LinkedIn")
        elif bio_reachable:
            fields.update(employment_status=EmploymentStatus.CURRENT, employment_source="bio")
            ledger.add(5, "Employment current via bio page")
        else:
            ledger.add(0, "Employment status unknown")

        # Title consistency
        if (linkedin is not None and linkedin.title_match) or stub.current_title.strip():
            fields["title_consistency"] = True
            ledger.add(10, "Title consistent")
        else:
            ledger.add(0, "No title to confirm")

        confidence = points_to_confidence(ledger.points)
        status = classify_score(confidence, fields.get("is_duplicate", False))
        logger.info(
            "Verified %s: %d points, confidence %.2f, status %s",
            stub.full_name, ledger.points, confidence, status.value,
        )
        return VerificationResult(
            **fields,
            score_points=ledger.points,
            confidence_score=confidence,
            verification_notes=" | ".join(ledger.notes),
            verification_status=status,
        )


def build_default_verifier() -> CandidateVerifier:
    """Verifier wired to the configured SerpAPI and HTTP clients."""
    search = SerpAPIClient()
    return CandidateVerifier(
        matcher=LinkedInMatcher(search),
        researcher=DomainResearcher(search),
        fetcher=PageFetcher(),
    )
