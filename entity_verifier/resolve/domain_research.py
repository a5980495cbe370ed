"""Company domain discovery and email-pattern inference.

Given a company name, find the organisation's primary web domain from
organic search results and infer the local-part convention its staff
addresses follow. Every failure mode (no credentials, failed search, no
hostname clearing the relevance floor) yields an unknown result rather than
a guess.

Relevance scoring (per keyword, per hostname):
  +2 x len(keyword)  keyword contained in the hostname
  +20               root label equals the keyword
  +10               otherwise, keyword inside a root label at most 3 chars longer
  +1                keyword not contained but shares a 3-gram with the hostname
Once per hostname:
  -5                root label longer than 20 chars
  -15               leftmost subdomain is a non-primary prefix (jobs., fr., ...)
The result index adds a rank bonus of ``10 - index``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

import tldextract

from entity_verifier.config import settings
from entity_verifier.models import (
    CompanyCandidateRecord,
    DomainCandidate,
    EmailInference,
    EmailPattern,
)
from entity_verifier.results import Failed, Found

logger = logging.getLogger(__name__)

# Offline public-suffix resolution from the bundled snapshot.
_EXTRACT = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

MAX_RESULTS_CONSIDERED = 10

# ---------------------------------------------------------------------------
# Heuristic tables
# ---------------------------------------------------------------------------

COMPANY_STOP_WORDS: frozenset[str] = frozenset({
    "inc", "llc", "ltd", "corp", "corporation", "co", "company", "group",
    "partners", "holdings", "limited", "plc", "llp", "lp", "the", "and", "of",
})

# Registered domains that are never a company's own site.
NON_COMPANY_DOMAINS: frozenset[str] = frozenset({
    "linkedin.com", "facebook.com", "twitter.com", "x.com", "instagram.com",
    "youtube.com", "tiktok.com", "wikipedia.org", "crunchbase.com",
    "bloomberg.com", "reuters.com", "forbes.com", "wsj.com", "ft.com",
    "cnbc.com", "businessinsider.com", "techcrunch.com", "glassdoor.com",
    "indeed.com", "zoominfo.com", "pitchbook.com", "dnb.com", "owler.com",
    "craft.co", "yahoo.com", "google.com", "bing.com", "yelp.com",
    "mapquest.com", "prnewswire.com", "businesswire.com", "rocketreach.co",
    "signalhire.com", "apollo.io", "lusha.com", "contactout.com",
})

NON_PRIMARY_PREFIXES: frozenset[str] = frozenset({
    # language / region codes
    "en", "de", "fr", "es", "it", "nl", "pt", "ja", "jp", "zh", "cn", "ko",
    "ru", "sv", "pl", "uk", "us", "eu", "au", "ca", "in", "br", "mx",
    # secondary properties
    "www2", "www3", "m", "mobile", "jobs", "careers", "career", "investors",
    "investor", "ir", "blog", "news", "media", "press", "shop", "store",
    "support", "help", "docs", "dev", "developer", "developers", "status",
    "community", "forum", "events", "mail", "email", "portal", "login", "app",
})

# Ordered: on equal cue counts the earlier pattern wins.
EMAIL_PATTERN_CUES: tuple[tuple[EmailPattern, tuple[str, ...]], ...] = (
    (EmailPattern.FIRST_DOT_LAST, (
        "first.last@", "firstname.lastname@", "first_name.last_name@",
        "{first}.{last}@",
    )),
    (EmailPattern.F_DOT_LAST, (
        "f.last@", "flast@", "f.lastname@", "flastname@", "{f}{last}@",
        "first initial",
    )),
    (EmailPattern.FIRSTLAST, (
        "firstlast@", "firstnamelastname@", "{first}{last}@", "no dot",
    )),
)

DEFAULT_EMAIL_PATTERN = EmailPattern.FIRST_DOT_LAST

_WORD_RE = re.compile(r"[a-z0-9]+")
_LOCAL_PART_RE = re.compile(r"[^a-z0-9]")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def extract_company_keywords(company_name: str) -> list[str]:
    """Lower-cased significant words of a company name, in order."""
    words = _WORD_RE.findall((company_name or "").lower())
    return [w for w in words if w not in COMPANY_STOP_WORDS and len(w) > 2]


def extract_hostname(link: str) -> str:
    """Lower-cased hostname of a result link with a leading ``www.`` removed."""
    try:
        host = urlparse(link).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def registered_domain(hostname: str) -> str:
    ext = _EXTRACT(hostname)
    if not ext.domain or not ext.suffix:
        return hostname
    return f"{ext.domain}.{ext.suffix}"


def is_non_company_domain(hostname: str) -> bool:
    if not hostname:
        return True
    reg = registered_domain(hostname)
    return reg in NON_COMPANY_DOMAINS or hostname in NON_COMPANY_DOMAINS


def _shares_trigram(keyword: str, hostname: str) -> bool:
    return any(
        keyword[i:i + 3] in hostname
        for i in range(len(keyword) - 2)
    )


def score_domain_relevance(hostname: str, keywords: Iterable[str]) -> int:
    """Relevance of a hostname to the company keywords (no rank bonus)."""
    host = hostname.lower()
    ext = _EXTRACT(host)
    root = ext.domain.lower()

    score = 0
    for kw in keywords:
        if kw in host:
            score += 2 * len(kw)
            if root == kw:
                score += 20
            elif kw in root and len(root) <= len(kw) + 3:
                score += 10
        elif _shares_trigram(kw, host):
            score += 1

    if len(root) > 20:
        score -= 5
    if ext.subdomain:
        leftmost = ext.subdomain.split(".")[0]
        if leftmost in NON_PRIMARY_PREFIXES:
            score -= 15
    return score


def rank_domain_candidates(
    results: list[dict[str, Any]],
    keywords: list[str],
) -> tuple[DomainCandidate, ...]:
    """Score the first organic results and sort them best-first.

    Non-company domains are skipped but still consume their result index, so
    rank bonuses reflect the original search position. A hostname seen twice
    keeps its first (higher-ranked) occurrence.
    """
    seen: set[str] = set()
    candidates: list[DomainCandidate] = []
    for index, result in enumerate(results[:MAX_RESULTS_CONSIDERED]):
        hostname = extract_hostname(result.get("link", ""))
        if not hostname or hostname in seen or is_non_company_domain(hostname):
            continue
        seen.add(hostname)
        candidates.append(DomainCandidate(
            hostname=hostname,
            relevance_score=score_domain_relevance(hostname, keywords),
            rank=index,
        ))
    candidates.sort(key=lambda c: c.total_score, reverse=True)
    return tuple(candidates)


def select_domain(
    candidates: tuple[DomainCandidate, ...],
    has_keywords: bool,
    min_relevance: int | None = None,
) -> tuple[Optional[DomainCandidate], str]:
    """Pick the domain to trust, with a confidence label.

    Returns ``(candidate, "high")``, ``(top, "low")`` when there were no
    keywords to score against, or ``(None, "none")``.
    """
    floor = settings.domain_min_relevance if min_relevance is None else min_relevance
    if not candidates:
        return None, "none"
    if not has_keywords:
        return candidates[0], "low"
    for candidate in candidates:
        if candidate.relevance_score >= floor:
            return candidate, "high"
    return None, "none"


def classify_email_pattern(snippets: Iterable[str]) -> EmailPattern:
    """Pick the pattern with the most textual cues across snippets."""
    text = " ".join(s for s in snippets if s).lower()
    best = DEFAULT_EMAIL_PATTERN
    best_count = 0
    for pattern, cues in EMAIL_PATTERN_CUES:
        count = sum(text.count(cue) for cue in cues)
        if count > best_count:
            best, best_count = pattern, count
    return best


def _local_token(value: str) -> str:
    return _LOCAL_PART_RE.sub("", (value or "").lower())


def generate_email_address(
    first_name: str,
    last_name: str,
    domain: str,
    pattern: EmailPattern | str,
) -> str:
    """Deterministically build an address from a name and a pattern."""
    first = _local_token(first_name)
    last = _local_token(last_name)
    domain = (domain or "").strip().lower()
    pattern = EmailPattern(pattern)

    if pattern is EmailPattern.F_DOT_LAST:
        local = f"{first[:1]}.{last}"
    elif pattern is EmailPattern.FIRSTLAST:
        local = f"{first}{last}"
    else:
        local = f"{first}.{last}"
    return f"{local}@{domain}"


# ---------------------------------------------------------------------------
# Researcher
# ---------------------------------------------------------------------------

class DomainResearcher:
    """Discovers a company's domain and email pattern via web search."""

    def __init__(self, search_client, min_relevance: int | None = None):
        self.search_client = search_client
        self.min_relevance = (
            settings.domain_min_relevance if min_relevance is None else min_relevance
        )

    async def find_company_domain(
        self, company_name: str,
    ) -> tuple[Optional[str], str]:
        """Return ``(hostname, confidence)`` or ``(None, "none")``."""
        record = CompanyCandidateRecord(
            name=company_name,
            raw_query_terms=tuple(extract_company_keywords(company_name)),
        )
        keywords = list(record.raw_query_terms)
        query = f"{record.name} official website"
        result = await self.search_client.search_results(query, num=MAX_RESULTS_CONSIDERED)
        if not isinstance(result, Found):
            logger.info("Domain search for %r returned no usable results: %s",
                        company_name, result)
            return None, "none"

        candidates = rank_domain_candidates(result.data, keywords)
        for c in candidates[:5]:
            logger.debug("  domain candidate %s relevance=%d total=%d",
                         c.hostname, c.relevance_score, c.total_score)

        selected, confidence = select_domain(
            candidates, bool(keywords), self.min_relevance,
        )
        if selected is None:
            logger.info("No domain for %r cleared relevance floor %d",
                        company_name, self.min_relevance)
            return None, "none"

        logger.info("Domain for %r: %s (%s confidence)",
                    company_name, selected.hostname, confidence)
        return selected.hostname, confidence

    async def infer_email_pattern(
        self, company_name: str, domain: str,
    ) -> Optional[EmailPattern]:
        """Infer the pattern from search snippets.

        A search that ran but produced no cues defaults to
        ``firstname.lastname``; a search that failed yields ``None``.
        """
        query = f"{company_name} email format contact"
        result = await self.search_client.search_results(query, num=MAX_RESULTS_CONSIDERED)
        if isinstance(result, Failed):
            logger.info("Email format search failed for %r: %s",
                        company_name, result.reason)
            return None
        snippets = []
        if isinstance(result, Found):
            snippets = [
                f"{r.get('title', '')} {r.get('snippet', '')}" for r in result.data
            ]
        pattern = classify_email_pattern(snippets)
        logger.info("Email pattern for %s: %s", domain, pattern.value)
        return pattern

    async def research_company(self, company_name: str) -> EmailInference:
        """Full research pass. Never raises on upstream problems."""
        if not company_name or not company_name.strip():
            return EmailInference()

        domain, confidence = await self.find_company_domain(company_name)
        if not domain:
            return EmailInference()

        pattern = await self.infer_email_pattern(company_name, domain)
        if pattern is None:
            return EmailInference()
        return EmailInference(domain=domain, pattern=pattern, confidence=confidence)
