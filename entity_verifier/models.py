"""Domain models shared across the resolution pipeline.

Intermediate results (domain candidates, profile candidates, offices,
duplicate checks) are small frozen dataclasses. The terminal artifact,
``VerificationResult``, is a frozen pydantic model so it serialises cleanly
into the record store and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Domain & email research
# ---------------------------------------------------------------------------

class EmailPattern(str, Enum):
    """Local-part convention used by an organisation."""
    FIRST_DOT_LAST = "firstname.lastname"
    F_DOT_LAST = "f.lastname"
    FIRSTLAST = "firstnamelastname"


@dataclass(frozen=True)
class CompanyCandidateRecord:
    """Ephemeral input to domain research."""
    name: str
    raw_query_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class DomainCandidate:
    """One scored organic search hit for a company."""
    hostname: str
    relevance_score: int
    rank: int

    @property
    def rank_bonus(self) -> int:
        return 10 - self.rank

    @property
    def total_score(self) -> int:
        return self.relevance_score + self.rank_bonus


@dataclass(frozen=True)
class EmailInference:
    """Outcome of domain + email-pattern research. ``None`` means unknown."""
    domain: str | None = None
    pattern: EmailPattern | None = None
    confidence: str = "none"  # "high" | "low" | "none"


# ---------------------------------------------------------------------------
# LinkedIn matching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileCandidate:
    """One scored search hit for a person."""
    url: str
    score: int
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkedInMatch:
    """Accepted profile with flags derived from the recorded reasons."""
    url: str
    company_match: bool
    title_match: bool
    score: int
    reasons: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Office locations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OfficeLocation:
    city: str = ""
    country: str = ""
    address: str = ""

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for cross-layer dedupe."""
        return (self.city.strip().lower(), self.country.strip().lower())

    @property
    def is_empty(self) -> bool:
        return not self.city.strip() and not self.country.strip()


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------

class DuplicateMatchType(str, Enum):
    EXACT_NAME_COMPANY = "exact_name_company"
    EXACT_NAME = "exact_name"
    FUZZY_NAME = "fuzzy_name"


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool = False
    match_score: float | None = None
    match_type: DuplicateMatchType | None = None
    matched_record: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    PENDING_REVIEW = "pending_review"


class EmploymentStatus(str, Enum):
    CURRENT = "current"
    UNKNOWN = "unknown"


class CandidateStub(BaseModel):
    """Raw candidate supplied by an ingestion driver."""
    first_name: str
    last_name: str
    current_company: str = ""
    current_title: str = ""
    bio_url: str = ""
    company_domain: str = ""
    email: str = ""
    linkedin_url: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class VerificationResult(BaseModel):
    """Terminal, immutable artifact of one verification run."""
    model_config = ConfigDict(frozen=True)

    linkedin_exists: bool = False
    linkedin_url: str | None = None
    linkedin_company_match: bool = False
    linkedin_title_match: bool = False
    bio_url_valid: bool = False
    bio_url_accessible: bool = False
    email_pattern_match: bool = False
    email_pattern: str | None = None
    suggested_email: str | None = None
    is_duplicate: bool = False
    duplicate_match_score: float | None = None
    employment_status: EmploymentStatus = EmploymentStatus.UNKNOWN
    employment_source: str | None = None
    title_consistency: bool = False
    score_points: int = 0
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    verification_notes: str = ""
    verification_status: VerificationStatus = VerificationStatus.PENDING_REVIEW
