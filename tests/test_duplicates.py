"""Tests for candidate and company duplicate detection."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

from entity_verifier.models import CandidateStub, DuplicateMatchType
from entity_verifier.resolve.duplicates import (
    auto_deduplicate,
    calculate_candidate_match,
    calculate_company_match,
    candidate_hash,
    check_duplicate,
    find_candidate_duplicates,
    find_company_duplicates,
    website_domain,
)


def _person(first, last, company=""):
    return {"first_name": first, "last_name": last, "current_company": company}


class TestCheckDuplicate:
    def test_exact_name_and_company(self):
        check = check_duplicate("Jane Doe", "Acme", [_person("Jane", "Doe", "Acme")])
        assert check.is_duplicate is True
        assert check.match_score == 1.0
        assert check.match_type == DuplicateMatchType.EXACT_NAME_COMPANY
        assert check.matched_record == _person("Jane", "Doe", "Acme")

    def test_exact_name_different_company(self):
        check = check_duplicate("Jane Doe", "Acme", [_person("Jane", "Doe", "Globex")])
        assert check.is_duplicate is True
        assert check.match_score == 0.7
        assert check.match_type == DuplicateMatchType.EXACT_NAME

    def test_normalisation_ignores_case_and_punctuation(self):
        check = check_duplicate("jane o'doe", "ACME, Inc.", [_person("Jane", "ODoe", "Acme Inc")])
        assert check.match_score == 1.0

    def test_fuzzy_name(self):
        check = check_duplicate("Jon Smith", "Acme", [_person("John", "Smith", "Globex")])
        assert check.is_duplicate is True
        assert check.match_type == DuplicateMatchType.FUZZY_NAME
        assert check.match_score == 0.9

    def test_ratio_at_threshold_is_not_a_duplicate(self):
        # three substitutions over twenty characters: ratio exactly 0.85
        check = check_duplicate("Alexandre Whitehorsa", "", [_person("Alexandra", "Whitehouse")])
        assert check.is_duplicate is False
        assert check.match_score is None

    def test_different_people(self):
        assert check_duplicate("Jane Doe", "Acme", [_person("John", "Doe", "Acme")]).is_duplicate is False

    def test_symmetric(self):
        forward = check_duplicate("Jane Doe", "", [_person("Jane", "Dow")])
        backward = check_duplicate("Jane Dow", "", [_person("Jane", "Doe")])
        assert forward.match_score == backward.match_score == 7 / 8

    def test_first_qualifying_record_wins(self):
        population = [_person("Jane", "Dow", "Acme"), _person("Jane", "Doe", "Acme")]
        check = check_duplicate("Jane Doe", "Acme", population)
        assert check.match_type == DuplicateMatchType.FUZZY_NAME
        assert check.matched_record["last_name"] == "Dow"

    def test_accepts_objects(self):
        record = SimpleNamespace(first_name="Jane", last_name="Doe", current_company="Acme")
        check = check_duplicate("Jane Doe", "Acme", [record])
        assert check.match_score == 1.0
        assert check.matched_record == _person("Jane", "Doe", "Acme")

    def test_empty_population_and_name(self):
        assert check_duplicate("Jane Doe", "Acme", []).is_duplicate is False
        assert check_duplicate("", "Acme", [_person("", "", "Acme")]).is_duplicate is False


class TestCandidateHash:
    def test_case_and_whitespace_insensitive(self):
        assert candidate_hash(" https://LinkedIn.com/in/JaneDoe ", "Jane@Acme.com") == \
            candidate_hash("https://linkedin.com/in/janedoe", "jane@acme.com")

    def test_identifiers_change_the_key(self):
        assert candidate_hash("https://linkedin.com/in/janedoe") != \
            candidate_hash("https://linkedin.com/in/janedoe", "jane@acme.com")

    def test_no_identifiers(self):
        assert candidate_hash() is None
        assert candidate_hash("", "  ") is None


class TestWeightedCandidateMatch:
    def test_identical_identifiers(self):
        jane = {
            "first_name": "Jane", "last_name": "Doe",
            "email": "jane.doe@acme.com", "linkedin_url": "https://www.linkedin.com/in/janedoe",
        }
        assert calculate_candidate_match(jane, dict(jane)) == (
            100, ("email", "first_name", "last_name", "linkedin_url"),
        )

    def test_email_outweighs_last_name(self):
        # (100 * 0.35 + 0 * 0.15) / 0.50
        new = {"last_name": "Li", "email": "wei@acme.com"}
        existing = {"last_name": "Xu", "email": "wei@acme.com"}
        assert calculate_candidate_match(new, existing) == (70, ("email",))

    def test_linkedin_alone_with_other_company(self):
        # (100 * 0.25 + 0 * 0.05) / 0.30
        url = "https://www.linkedin.com/in/janedoe"
        new = {"linkedin_url": url, "current_company": "Acme"}
        existing = {"linkedin_url": url, "current_company": "Zyxw"}
        assert calculate_candidate_match(new, existing) == (83, ("linkedin_url",))

    def test_only_shared_fields_count(self):
        assert calculate_candidate_match({"email": "a@acme.com"}, {"first_name": "A"}) == (0, ())

    def test_threshold_is_inclusive(self):
        # Email exact, last names "Li"/"Lu" at 50: (35 + 7.5) / 0.50 = 85
        new = CandidateStub(first_name="", last_name="Li", email="wei@acme.com")
        at_threshold = {"id": 1, "last_name": "Lu", "email": "wei@acme.com"}
        below = {"id": 2, "last_name": "Xu", "email": "wei@acme.com"}

        matches = find_candidate_duplicates(new, [below, at_threshold])

        assert [(m.record["id"], m.match_score) for m in matches] == [(1, 85)]
        assert find_candidate_duplicates(new, [below], threshold=70)[0].match_score == 70

    def test_sorted_best_first(self):
        new = {"first_name": "Jane", "last_name": "Doe", "current_company": "Acme"}
        population = [
            {"id": 1, "first_name": "Jane", "last_name": "Doe", "current_company": "Zyxw"},
            {"id": 2, "first_name": "Jane", "last_name": "Doe", "current_company": "Acme"},
        ]
        matches = find_candidate_duplicates(new, population)
        assert [m.record["id"] for m in matches] == [2, 1]
        assert matches[0].match_score == 100
        assert matches[0].matched_fields == ("first_name", "last_name", "current_company")


class TestAutoDeduplicate:
    def test_merges_shared_hash_into_earliest(self, record_store):
        primary = record_store.create_candidate(
            {"first_name": "Jane", "last_name": "Doe", "email": "jane.doe@acme.com"},
        )
        record_store.create_candidate({
            "first_name": "Jane", "last_name": "Doe",
            "email": " JANE.DOE@acme.com", "current_title": "Partner",
        })
        other = record_store.create_candidate(
            {"first_name": "John", "last_name": "Smith", "email": "john@globex.com"},
        )
        anonymous = record_store.create_candidate({"first_name": "No", "last_name": "Identifiers"})

        result = auto_deduplicate(record_store)

        assert (result.duplicates_found, result.merged_count) == (1, 1)
        remaining = record_store.get_candidates()
        assert [c["id"] for c in remaining] == [primary["id"], other["id"], anonymous["id"]]
        assert remaining[0]["email"] == "jane.doe@acme.com"
        assert remaining[0]["current_title"] == "Partner"

    def test_failed_merge_is_counted_as_found_only(self):
        store = MagicMock()
        store.get_candidates.return_value = [
            {"id": 1, "email": "jane@acme.com"},
            {"id": 2, "email": "jane@acme.com"},
        ]
        store.merge_candidates.return_value = None

        result = auto_deduplicate(store)

        assert (result.duplicates_found, result.merged_count) == (1, 0)
        store.merge_candidates.assert_called_once_with(2, 1)


class TestCompanyDuplicates:
    def test_website_domain(self):
        assert website_domain("WWW.Acme.com/path") == "acme.com"
        assert website_domain("https://www.acmecapital.com/about") == "acmecapital.com"
        assert website_domain("") == ""

    def test_same_website_dominates(self):
        score, fields = calculate_company_match(
            {"name": "Acme Capital", "website": "https://www.acmecapital.com"},
            {"name": "Acme Capital LLC", "website": "acmecapital.com"},
        )
        assert score == 88
        assert fields == ("website",)

    def test_same_name_different_website(self):
        score, _ = calculate_company_match(
            {"name": "Acme Capital", "website": "acmecapital.com"},
            {"name": "Acme Capital", "website": "acme-capital.io"},
        )
        assert score == 47

    def test_only_shared_fields_count(self):
        assert calculate_company_match({"name": "Acme"}, {"name": "acme", "industry": "Finance"}) == (100, ("name",))
        assert calculate_company_match({"name": ""}, {"website": "acme.com"}) == (0, ())

    def test_find_sorted_best_first(self):
        new = {"name": "Acme Capital", "website": "https://www.acmecapital.com"}
        close = {"name": "Acme Capital LLC", "website": "acmecapital.com"}
        exact = {"name": "Acme Capital", "website": "https://acmecapital.com/about"}
        other = {"name": "Beta", "website": "beta.io"}

        matches = find_company_duplicates(new, [close, other, exact])

        assert [m.record for m in matches] == [exact, close]
        assert [m.match_score for m in matches] == [100, 88]
