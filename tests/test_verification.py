"""Tests for composite candidate verification and scoring."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from entity_verifier.models import (
    CandidateStub,
    EmailPattern,
    EmploymentStatus,
    LinkedInMatch,
    VerificationStatus,
)
from entity_verifier.verify.orchestrator import (
    CandidateVerifier,
    classify_score,
    is_valid_url_format,
    points_to_confidence,
)


JANE_MATCH = LinkedInMatch(
    url="https://www.linkedin.com/in/janedoe",
    company_match=True,
    title_match=True,
    score=105,
)


def _collaborators(profile=None, reachable=False, pattern=None):
    matcher = MagicMock()
    matcher.find_profile = AsyncMock(return_value=profile)
    fetcher = MagicMock()
    fetcher.head = AsyncMock(return_value=reachable)
    researcher = MagicMock()
    researcher.infer_email_pattern = AsyncMock(return_value=pattern)
    return matcher, researcher, fetcher


def _verifier(profile=None, reachable=False, pattern=None, **kwargs):
    matcher, researcher, fetcher = _collaborators(profile, reachable, pattern)
    return CandidateVerifier(matcher=matcher, researcher=researcher, fetcher=fetcher, **kwargs)


class TestClassification:
    @pytest.mark.parametrize("confidence,expected", [
        (1.0, VerificationStatus.VERIFIED),
        (0.85, VerificationStatus.VERIFIED),
        (0.84, VerificationStatus.PENDING_REVIEW),
        (0.3, VerificationStatus.PENDING_REVIEW),
        (0.29, VerificationStatus.REJECTED),
        (0.0, VerificationStatus.REJECTED),
    ])
    def test_thresholds(self, confidence, expected):
        assert classify_score(confidence, False) == expected

    def test_duplicate_always_wins(self):
        assert classify_score(1.0, True) == VerificationStatus.DUPLICATE

    def test_confidence_is_clamped(self):
        assert points_to_confidence(-20) == 0.0
        assert points_to_confidence(45) == 0.45
        assert points_to_confidence(130) == 1.0

    def test_url_format(self):
        assert is_valid_url_format("https://acme.com/team/jane")
        assert not is_valid_url_format("acme.com/team")
        assert not is_valid_url_format("https://localhost")
        assert not is_valid_url_format("")


class TestCandidateVerifier:
    @pytest.mark.asyncio
    async def test_nothing_found_is_rejected(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", current_company="Acme")
        verifier = _verifier()

        result = await verifier.verify(stub, [])

        assert result.score_points == 15
        assert result.confidence_score == 0.15
        assert result.verification_status == VerificationStatus.REJECTED
        assert result.verification_notes == (
            "LinkedIn profile not found | No bio URL provided | No company domain provided"
            " | No duplicates found (+15) | Employment status unknown | No title to confirm"
        )
        verifier.fetcher.head.assert_not_called()
        verifier.researcher.infer_email_pattern.assert_not_called()

    @pytest.mark.asyncio
    async def test_exact_duplicate_subtracts_twenty(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", current_company="Acme")
        population = [{"first_name": "Jane", "last_name": "Doe", "current_company": "Acme"}]

        result = await _verifier().verify(stub, population)

        assert result.is_duplicate is True
        assert result.duplicate_match_score == 1.0
        assert result.score_points == -20
        assert result.confidence_score == 0.0
        assert result.verification_status == VerificationStatus.DUPLICATE
        assert "Duplicate (exact_name_company, score 1.00) (-20)" in result.verification_notes

    @pytest.mark.asyncio
    async def test_fuzzy_duplicate_penalty(self):
        stub = CandidateStub(first_name="Jon", last_name="Smith", current_company="Acme")
        population = [{"first_name": "John", "last_name": "Smith", "current_company": "Acme"}]
        result = await _verifier().verify(stub, population)
        assert result.score_points == -15
        assert result.duplicate_match_score == 0.9

    @pytest.mark.asyncio
    async def test_every_check_passing(self):
        stub = CandidateStub(
            first_name="Jane",
            last_name="Doe",
            current_company="Acme",
            current_title="CFO",
            bio_url="https://acme.com/team/jane",
            company_domain="Acme.com",
        )
        verifier = _verifier(JANE_MATCH, True, EmailPattern.FIRST_DOT_LAST)

        result = await verifier.verify(stub)

        assert result.score_points == 100
        assert result.confidence_score == 1.0
        assert result.verification_status == VerificationStatus.VERIFIED
        assert result.linkedin_url == JANE_MATCH.url
        assert result.linkedin_company_match and result.linkedin_title_match
        assert result.bio_url_valid and result.bio_url_accessible
        assert result.email_pattern == "firstname.lastname"
        assert result.suggested_email == "jane.doe@acme.com"
        assert result.employment_status == EmploymentStatus.CURRENT
        assert result.employment_source == "linkedin"
        assert result.title_consistency is True
        verifier.researcher.infer_email_pattern.assert_awaited_once_with("Acme", "acme.com")
        verifier.fetcher.head.assert_awaited_once_with("https://acme.com/team/jane")

    @pytest.mark.asyncio
    async def test_bio_page_proves_employment(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", bio_url="https://acme.com/jane")
        result = await _verifier(reachable=True).verify(stub)

        assert result.score_points == 35
        assert result.employment_source == "bio"
        assert result.verification_status == VerificationStatus.PENDING_REVIEW

    @pytest.mark.asyncio
    async def test_invalid_bio_url_is_not_fetched(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", bio_url="not-a-url")
        verifier = _verifier(reachable=True)

        result = await verifier.verify(stub)

        assert result.bio_url_valid is False
        assert "Bio URL invalid format: not-a-url" in result.verification_notes
        verifier.fetcher.head.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_subcheck_does_not_abort(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", company_domain="acme.com")
        verifier = _verifier(pattern=EmailPattern.F_DOT_LAST)
        verifier.matcher.find_profile.side_effect = RuntimeError("search quota exhausted")

        result = await verifier.verify(stub)

        assert "LinkedIn check failed: search quota exhausted" in result.verification_notes
        assert result.linkedin_exists is False
        assert result.suggested_email == "j.doe@acme.com"
        assert result.score_points == 35

    @pytest.mark.asyncio
    async def test_unknown_pattern_scores_nothing(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe", company_domain="acme.com")
        result = await _verifier(pattern=None).verify(stub)
        assert result.email_pattern_match is False
        assert "Email pattern could not be inferred for acme.com" in result.verification_notes
        assert result.score_points == 15

    @pytest.mark.asyncio
    async def test_empty_population_can_withhold_uniqueness_bonus(self):
        stub = CandidateStub(first_name="Jane", last_name="Doe")
        result = await _verifier(uniqueness_bonus_on_empty_population=False).verify(stub, [])
        assert result.score_points == 0
        assert "No existing records to compare against" in result.verification_notes

    @pytest.mark.asyncio
    async def test_without_collaborators(self):
        stub = CandidateStub(
            first_name="Jane", last_name="Doe", bio_url="https://acme.com/jane", company_domain="acme.com",
        )
        result = await CandidateVerifier().verify(stub)
        # only the well-formed bio URL and uniqueness bonus count
        assert result.score_points == 20

    @pytest.mark.asyncio
    async def test_result_is_immutable(self):
        result = await _verifier().verify(CandidateStub(first_name="Jane", last_name="Doe"))
        with pytest.raises(ValidationError):
            result.score_points = 99
