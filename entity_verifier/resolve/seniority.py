"""Seniority classification for executive search gating.

Job titles map to an ordinal ``SeniorityLevel`` through an ordered keyword
table. The first matching row wins, so the most senior patterns come first:
"Senior Vice President of Engineering" resolves to SVP, never to VP.
Keywords match on word boundaries ("cto" does not match "director").
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SeniorityLevel(IntEnum):
    UNKNOWN = 0
    # Junior
    INTERN = 1
    ANALYST = 2
    ASSOCIATE = 3
    # Mid
    SENIOR_ASSOCIATE = 4
    MANAGER = 5
    SENIOR_MANAGER = 6
    # Senior
    DIRECTOR = 7
    SENIOR_DIRECTOR = 8
    VP = 9
    # Executive
    SVP = 10
    EVP = 11
    C_SUITE = 12


# Priority order is significant: checked top to bottom.
TITLE_SENIORITY_TABLE: tuple[tuple[tuple[str, ...], SeniorityLevel], ...] = (
    (("chief executive officer", "ceo"), SeniorityLevel.C_SUITE),
    (("chief financial officer", "cfo"), SeniorityLevel.C_SUITE),
    (("chief operating officer", "coo"), SeniorityLevel.C_SUITE),
    (("chief technology officer", "cto"), SeniorityLevel.C_SUITE),
    (("chief marketing officer", "cmo"), SeniorityLevel.C_SUITE),
    (("chief product officer", "cpo"), SeniorityLevel.C_SUITE),
    (("chief", "c-level"), SeniorityLevel.C_SUITE),
    (("managing director", "md", "managing partner"), SeniorityLevel.C_SUITE),
    (("general manager", "gm"), SeniorityLevel.C_SUITE),
    (("executive vice president", "evp"), SeniorityLevel.EVP),
    (("senior vice president", "svp", "senior vp"), SeniorityLevel.SVP),
    (("vice president", "vp", "v.p."), SeniorityLevel.VP),
    (("head of",), SeniorityLevel.VP),
    (("senior director",), SeniorityLevel.SENIOR_DIRECTOR),
    (("director",), SeniorityLevel.DIRECTOR),
    (("principal",), SeniorityLevel.DIRECTOR),
    (("senior manager",), SeniorityLevel.SENIOR_MANAGER),
    (("manager",), SeniorityLevel.MANAGER),
    (("team lead", "team leader"), SeniorityLevel.MANAGER),
    (("senior associate",), SeniorityLevel.SENIOR_ASSOCIATE),
    (("associate",), SeniorityLevel.ASSOCIATE),
    (("analyst",), SeniorityLevel.ANALYST),
    (("intern", "internship"), SeniorityLevel.INTERN),
)


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])")


_COMPILED_TABLE: tuple[tuple[tuple[re.Pattern[str], ...], SeniorityLevel], ...] = tuple(
    (tuple(_keyword_pattern(k) for k in keywords), level)
    for keywords, level in TITLE_SENIORITY_TABLE
)

# (lowest job level, highest job level, minimum candidate level)
MINIMUM_SENIORITY_BANDS: tuple[tuple[SeniorityLevel, SeniorityLevel, SeniorityLevel], ...] = (
    (SeniorityLevel.C_SUITE, SeniorityLevel.C_SUITE, SeniorityLevel.VP),
    (SeniorityLevel.VP, SeniorityLevel.EVP, SeniorityLevel.DIRECTOR),
    (SeniorityLevel.DIRECTOR, SeniorityLevel.SENIOR_DIRECTOR, SeniorityLevel.SENIOR_MANAGER),
    (SeniorityLevel.MANAGER, SeniorityLevel.SENIOR_MANAGER, SeniorityLevel.MANAGER),
    (SeniorityLevel.ANALYST, SeniorityLevel.SENIOR_ASSOCIATE, SeniorityLevel.ANALYST),
)


def determine_seniority_level(title: str | None) -> SeniorityLevel:
    """Map a free-text job title to a seniority level."""
    if not title:
        return SeniorityLevel.UNKNOWN
    title_lower = title.lower().strip()
    for patterns, level in _COMPILED_TABLE:
        if any(p.search(title_lower) for p in patterns):
            return level
    return SeniorityLevel.UNKNOWN


def get_minimum_seniority_for_job(job_title: str | None) -> SeniorityLevel:
    """Lowest candidate level acceptable for a job.

    Executives one band down may step up (a C-Suite search accepts VPs).
    ``UNKNOWN`` means no floor.
    """
    job_level = determine_seniority_level(job_title)
    for low, high, minimum in MINIMUM_SENIORITY_BANDS:
        if low <= job_level <= high:
            return minimum
    return SeniorityLevel.UNKNOWN


def is_seniority_acceptable(candidate_title: str | None, job_title: str | None) -> bool:
    minimum = get_minimum_seniority_for_job(job_title)
    if minimum == SeniorityLevel.UNKNOWN:
        return True
    return determine_seniority_level(candidate_title) >= minimum


def seniority_level_name(level: SeniorityLevel | int) -> str:
    return SeniorityLevel(level).name


@dataclass(frozen=True)
class SeniorityDecision(Generic[T]):
    candidate: T
    title: str | None
    level: SeniorityLevel
    accepted: bool


@dataclass
class SeniorityFilterResult(Generic[T]):
    job_title: str
    job_level: SeniorityLevel
    minimum_level: SeniorityLevel
    accepted: list[T] = field(default_factory=list)
    rejected: list[T] = field(default_factory=list)
    decisions: list[SeniorityDecision[T]] = field(default_factory=list)


def _default_title(candidate: Any) -> str | None:
    if isinstance(candidate, dict):
        return candidate.get("current_title")
    return getattr(candidate, "current_title", None)


def filter_candidates_by_seniority(
    candidates: Iterable[T],
    job_title: str,
    title_of: Callable[[T], str | None] = _default_title,
) -> SeniorityFilterResult[T]:
    """Split candidates into those senior enough for the job and the rest.

    Every decision is logged and returned with the resolved level so an
    exclusion from an executive search can always be explained.
    """
    job_level = determine_seniority_level(job_title)
    minimum = get_minimum_seniority_for_job(job_title)
    result: SeniorityFilterResult[T] = SeniorityFilterResult(
        job_title=job_title, job_level=job_level, minimum_level=minimum,
    )

    logger.info(
        "Seniority filter for %r (level=%s, minimum=%s)",
        job_title, job_level.name, minimum.name,
    )

    for candidate in candidates:
        title = title_of(candidate)
        level = determine_seniority_level(title)
        accepted = minimum == SeniorityLevel.UNKNOWN or level >= minimum
        result.decisions.append(SeniorityDecision(candidate, title, level, accepted))
        if accepted:
            result.accepted.append(candidate)
            logger.info("  ACCEPT: %r (level=%s)", title, level.name)
        else:
            result.rejected.append(candidate)
            logger.info(
                "  REJECT: %r (level=%s) – below %s+ requirement",
                title, level.name, minimum.name,
            )

    logger.info(
        "Seniority filter: %d accepted, %d rejected",
        len(result.accepted), len(result.rejected),
    )
    return result
