"""Edit-distance string similarity used by duplicate detection."""

from __future__ import annotations

import re

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_string(value: str | None) -> str:
    """Lower-case, drop punctuation and collapse whitespace."""
    if not value:
        return ""
    value = _NON_WORD_RE.sub("", value.lower())
    return _WS_RE.sub(" ", value).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic insertion/deletion/substitution edit distance."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                current[j - 1] + 1,       # insertion
                previous[j] + 1,          # deletion
                previous[j - 1] + cost,   # substitution
            ))
        previous = current
    return previous[-1]


def levenshtein_ratio(a: str, b: str) -> float:
    """``(max_len - distance) / max_len`` on the raw strings, in [0, 1]."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def string_similarity(a: str | None, b: str | None) -> int:
    """Similarity of two normalised strings on a 0-100 scale.

    Empty input scores 0; identical normalised strings score 100.
    """
    if not a or not b:
        return 0
    norm_a = normalize_string(a)
    norm_b = normalize_string(b)
    if norm_a == norm_b:
        return 100 if norm_a else 0
    return round(levenshtein_ratio(norm_a, norm_b) * 100)


def email_similarity(email1: str | None, email2: str | None) -> int:
    """Similarity of two email addresses on a 0-100 scale.

    Same domain compares only the local parts and is capped at 95.
    """
    if not email1 or not email2:
        return 0
    norm1 = email1.strip().lower()
    norm2 = email2.strip().lower()
    if norm1 == norm2:
        return 100

    local1, _, domain1 = norm1.partition("@")
    local2, _, domain2 = norm2.partition("@")
    if domain1 and domain1 == domain2:
        return min(string_similarity(local1, local2), 95)
    return string_similarity(norm1, norm2)
