"""Duplicate detection for candidate and company records.

Candidates are compared by normalised full name (exact, then Levenshtein
ratio above ``FUZZY_NAME_THRESHOLD``); the first qualifying record in the
population wins. Ingestion additionally scores stored candidates with a
weighted multi-field similarity led by email and LinkedIn URL. Companies use
the same weighted approach, where an identical website domain dominates.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from entity_verifier.models import DuplicateCheck, DuplicateMatchType
from entity_verifier.resolve.similarity import (
    email_similarity,
    levenshtein_ratio,
    normalize_string,
    string_similarity,
)

logger = logging.getLogger(__name__)

FUZZY_NAME_THRESHOLD = 0.85
EXACT_NAME_DIFFERENT_COMPANY_SCORE = 0.7

CANDIDATE_MATCH_THRESHOLD = 85
COMPANY_MATCH_THRESHOLD = 75

CANDIDATE_FIELD_WEIGHTS: dict[str, float] = {
    "email": 0.35,
    "first_name": 0.15,
    "last_name": 0.15,
    "linkedin_url": 0.25,
    "current_company": 0.05,
    "current_title": 0.05,
}

_CANDIDATE_FIELD_MATCH_AT: dict[str, int] = {
    "email": 90,
    "first_name": 80,
    "last_name": 80,
    "linkedin_url": 85,
    "current_company": 85,
    "current_title": 85,
}

COMPANY_FIELD_WEIGHTS: dict[str, float] = {
    "name": 0.35,
    "website": 0.40,
    "location": 0.10,
    "industry": 0.10,
    "parent_company": 0.05,
}

# Similarity (0-100) at which a field is reported as matched.
_COMPANY_FIELD_MATCH_AT: dict[str, int] = {
    "name": 85,
    "website": 100,
    "location": 80,
    "industry": 85,
    "parent_company": 85,
}


def _get(record: Any, name: str) -> str:
    if isinstance(record, dict):
        value = record.get(name)
    else:
        value = getattr(record, name, None)
    return value or ""


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

def check_duplicate(
    full_name: str,
    company: str,
    population: Iterable[Any],
) -> DuplicateCheck:
    """Compare a person against existing ``{first_name, last_name,
    current_company}`` records.

    Exact normalised name with the same normalised company scores 1.0, with a
    different company 0.7. Otherwise a name ratio above 0.85 is a fuzzy
    duplicate scored at the ratio itself.
    """
    name = normalize_string(full_name)
    company_norm = normalize_string(company)
    if not name:
        return DuplicateCheck()

    for record in population:
        existing_name = normalize_string(
            f"{_get(record, 'first_name')} {_get(record, 'last_name')}"
        )
        if not existing_name:
            continue
        existing_company = normalize_string(_get(record, "current_company"))
        matched = record if isinstance(record, dict) else {
            "first_name": _get(record, "first_name"),
            "last_name": _get(record, "last_name"),
            "current_company": _get(record, "current_company"),
        }

        if name == existing_name:
            if company_norm == existing_company:
                return DuplicateCheck(
                    is_duplicate=True,
                    match_score=1.0,
                    match_type=DuplicateMatchType.EXACT_NAME_COMPANY,
                    matched_record=matched,
                )
            return DuplicateCheck(
                is_duplicate=True,
                match_score=EXACT_NAME_DIFFERENT_COMPANY_SCORE,
                match_type=DuplicateMatchType.EXACT_NAME,
                matched_record=matched,
            )

        ratio = levenshtein_ratio(name, existing_name)
        if ratio > FUZZY_NAME_THRESHOLD:
            return DuplicateCheck(
                is_duplicate=True,
                match_score=ratio,
                match_type=DuplicateMatchType.FUZZY_NAME,
                matched_record=matched,
            )

    return DuplicateCheck()


def candidate_hash(
    linkedin_url: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[str]:
    """SHA-256 fast-path dedupe key over LinkedIn URL and email.

    Returns ``None`` when neither identifier is present.
    """
    parts = [
        (linkedin_url or "").strip().lower(),
        (email or "").strip().lower(),
    ]
    parts = [p for p in parts if p]
    if not parts:
        return None
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CandidateDuplicateMatch:
    record: Any
    match_score: int
    matched_fields: tuple[str, ...] = field(default_factory=tuple)


def calculate_candidate_match(new_candidate: Any, existing: Any) -> tuple[int, tuple[str, ...]]:
    """Weighted 0-100 similarity over the fields both candidates carry.

    Email is compared with :func:`email_similarity`; every other field with
    :func:`string_similarity`.
    """
    scores: dict[str, float] = {}
    for name in CANDIDATE_FIELD_WEIGHTS:
        a, b = _get(new_candidate, name), _get(existing, name)
        if not (a and b):
            continue
        scores[name] = email_similarity(a, b) if name == "email" else string_similarity(a, b)

    total_weight = sum(CANDIDATE_FIELD_WEIGHTS[f] for f in scores)
    if total_weight <= 0:
        return 0, ()
    weighted = sum(score * CANDIDATE_FIELD_WEIGHTS[f] for f, score in scores.items())
    matched = tuple(
        f for f in CANDIDATE_FIELD_WEIGHTS
        if f in scores and scores[f] >= _CANDIDATE_FIELD_MATCH_AT[f]
    )
    return round(weighted / total_weight), matched


def find_candidate_duplicates(
    new_candidate: Any,
    existing_candidates: Iterable[Any],
    threshold: int = CANDIDATE_MATCH_THRESHOLD,
) -> list[CandidateDuplicateMatch]:
    """Existing candidates scoring at or above ``threshold``, best first."""
    matches = []
    for existing in existing_candidates:
        score, fields = calculate_candidate_match(new_candidate, existing)
        if score >= threshold:
            matches.append(CandidateDuplicateMatch(existing, score, fields))
    matches.sort(key=lambda m: m.match_score, reverse=True)
    if matches:
        logger.info(
            "Candidate %s %s has %d potential duplicate(s), best score %d",
            _get(new_candidate, "first_name"), _get(new_candidate, "last_name"),
            len(matches), matches[0].match_score,
        )
    return matches


@dataclass(frozen=True)
class DeduplicationResult:
    duplicates_found: int = 0
    merged_count: int = 0


def auto_deduplicate(store) -> DeduplicationResult:
    """Merge stored candidates sharing a :func:`candidate_hash` into the
    earliest record carrying it.

    ``store`` needs ``get_candidates()`` and ``merge_candidates(dup, primary)``.
    """
    seen: dict[str, int] = {}
    found = merged = 0
    for candidate in store.get_candidates():
        key = candidate_hash(candidate.get("linkedin_url"), candidate.get("email"))
        if not key:
            continue
        if key not in seen:
            seen[key] = candidate["id"]
            continue
        found += 1
        if store.merge_candidates(candidate["id"], seen[key]) is not None:
            merged += 1
        else:
            logger.warning("Could not merge candidate %d into %d", candidate["id"], seen[key])

    logger.info("Deduplication found %d duplicate(s), merged %d", found, merged)
    return DeduplicationResult(duplicates_found=found, merged_count=merged)


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompanyDuplicateMatch:
    record: Any
    match_score: int
    matched_fields: tuple[str, ...] = field(default_factory=tuple)


def website_domain(url: str) -> str:
    """Lower-cased hostname of a website URL or bare domain, without ``www.``."""
    if not url:
        return ""
    candidate = url.strip()
    if not candidate.lower().startswith("http"):
        candidate = f"https://{candidate}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        host = url.strip().lower()
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def calculate_company_match(new_company: Any, existing: Any) -> tuple[int, tuple[str, ...]]:
    """Weighted 0-100 similarity over the fields both records carry."""
    scores: dict[str, float] = {}

    for name in ("name", "location", "industry", "parent_company"):
        a, b = _get(new_company, name), _get(existing, name)
        if a and b:
            scores[name] = string_similarity(a, b)

    a, b = _get(new_company, "website"), _get(existing, "website")
    if a and b:
        scores["website"] = 100 if website_domain(a) == website_domain(b) else 0

    total_weight = sum(COMPANY_FIELD_WEIGHTS[f] for f in scores)
    if total_weight <= 0:
        return 0, ()
    weighted = sum(score * COMPANY_FIELD_WEIGHTS[f] for f, score in scores.items())
    matched = tuple(
        f for f in COMPANY_FIELD_WEIGHTS
        if f in scores and scores[f] >= _COMPANY_FIELD_MATCH_AT[f]
    )
    return round(weighted / total_weight), matched


def find_company_duplicates(
    new_company: Any,
    existing_companies: Iterable[Any],
    threshold: int = COMPANY_MATCH_THRESHOLD,
) -> list[CompanyDuplicateMatch]:
    """Existing companies scoring at or above ``threshold``, best first."""
    matches = []
    for existing in existing_companies:
        score, fields = calculate_company_match(new_company, existing)
        if score >= threshold:
            matches.append(CompanyDuplicateMatch(existing, score, fields))
    matches.sort(key=lambda m: m.match_score, reverse=True)
    if matches:
        logger.info(
            "Company %r has %d potential duplicate(s), best score %d",
            _get(new_company, "name"), len(matches), matches[0].match_score,
        )
    return matches
