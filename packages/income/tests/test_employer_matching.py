"""Tests for employer name matching and grouping."""

from datetime import date

import pytest

from vindicate_income.config import MatchingConfig
from vindicate_income.employer_matching import (
    employer_similarity,
    get_best_employer_name,
    get_employer_ein,
    group_by_employer,
    group_by_employer_and_year,
    levenshtein_distance,
    normalize_ein,
)


class TestLevenshtein:
    def test_classic_example(self):
        assert levenshtein_distance("KITTEN", "SITTING") == 3

    def test_empty_strings(self):
        assert levenshtein_distance("", "ABC") == 3
        assert levenshtein_distance("ABC", "") == 3
        assert levenshtein_distance("", "") == 0


class TestEmployerSimilarity:
    """Tests for the 0-1 employer similarity score."""

    def test_suffix_and_case_insensitive_exact_match(self):
        """'Acme Corporation' and 'ACME CORP' normalize to the same name."""
        assert employer_similarity("Acme Corporation", "ACME CORP") == 1.0

    def test_bank_statement_abbreviation(self):
        """Bank statements drop vowels and trailing words."""
        score = employer_similarity("Springfield Nuclear Power Plant", "SPRNGFLD NUCLEAR")
        assert score >= 0.85

    def test_plain_truncation(self):
        score = employer_similarity("Globex Corporation International", "GLOBEX INTERNAT")
        assert score >= 0.85

    def test_containment_uses_length_ratio_above_floor(self):
        """A near-complete containment scores its length ratio."""
        score = employer_similarity("ACME WIDGETS", "ACME WIDGET")
        assert score == pytest.approx(11 / 12)

    def test_empty_name_scores_zero(self):
        """A name that is only a suffix normalizes to empty."""
        assert employer_similarity("Inc.", "Acme") == 0.0

    def test_unrelated_employers_score_low(self):
        assert employer_similarity("Acme Corporation", "Globex Holdings") < 0.75

    def test_short_word_not_treated_as_abbreviation(self):
        """'ACE' is a subsequence of 'ACME' but is not a truncation of it."""
        assert employer_similarity("ACE", "Acme Hardware") < 0.75

    def test_leading_prefixes_without_shared_word_not_abbreviation(self):
        """Every word a prefix of the other name's word, but no word in common."""
        assert employer_similarity("JOHN SMITH", "JOHNSON SMITHFIELD FOODS") < 0.75

    def test_single_word_typo(self):
        assert employer_similarity("Initech", "Inittech") >= 0.85

    @pytest.mark.parametrize(
        "a,b",
        [
            ("Springfield Nuclear Power Plant", "SPRNGFLD NUCLEAR"),
            ("Acme Widgets", "Acme Gadgets"),
            ("Initech", "Initrode"),
            ("AB CDE", "ABC DE"),
        ],
    )
    def test_symmetric(self, a, b):
        assert employer_similarity(a, b) == employer_similarity(b, a)

    def test_custom_containment_floor(self):
        config = MatchingConfig(containment_floor=0.9)
        assert employer_similarity("Globex International", "GLOBEX", config) == 0.9


class TestGroupByEmployer:
    """Tests for EIN and fuzzy name grouping."""

    def test_normalize_ein(self):
        assert normalize_ein("12-3456789") == "123456789"

    def test_ein_groups_ignore_formatting(self, make_income):
        a = make_income(payer_ein="12-3456789")
        b = make_income(payer_ein="123456789", payer_name="Totally Different Name")

        groups = group_by_employer([a, b])

        assert list(groups) == ["ein:123456789"]
        assert groups["ein:123456789"] == [a, b]

    def test_truncated_name_joins_ein_group(self, make_income):
        w2 = make_income(
            document_type="w2",
            payer_name="Springfield Nuclear Power Plant",
            payer_ein="98-7654321",
        )
        deposit = make_income(
            document_type="bank_statement",
            payer_name="SPRNGFLD NUCLEAR",
            frequency="biweekly",
        )

        groups = group_by_employer([w2, deposit])

        assert list(groups) == ["ein:987654321"]
        assert groups["ein:987654321"] == [w2, deposit]

    def test_name_groups_split_distinct_employers(self, make_income):
        acme_stub = make_income(payer_name="Acme Corporation")
        acme_bank = make_income(document_type="bank_statement", payer_name="ACME CORP")
        globex = make_income(payer_name="Globex Holdings")

        groups = group_by_employer([acme_stub, globex, acme_bank])

        assert groups == {
            "name:ACME": [acme_stub, acme_bank],
            "name:GLOBEX HOLDINGS": [globex],
        }

    def test_prefix_named_employers_kept_apart(self, make_income):
        smith = make_income(payer_name="John Smith")
        foods = make_income(payer_name="Johnson Smithfield Foods")

        groups = group_by_employer([smith, foods])

        assert groups == {
            "name:JOHN SMITH": [smith],
            "name:JOHNSON SMITHFIELD FOODS": [foods],
        }

    def test_name_groups_checked_before_ein_groups(self, make_income):
        """An income matching both a name group and an EIN group joins the name group."""
        with_ein = make_income(payer_name="Acme", payer_ein="11-1111111")
        widget = make_income(payer_name="Widget Works")
        both = make_income(payer_name="Acme Widget Works")

        groups = group_by_employer([with_ein, widget, both])

        assert groups == {
            "ein:111111111": [with_ein],
            "name:WIDGET WORKS": [widget, both],
        }

    def test_unmatched_income_joins_ein_group_by_name(self, make_income):
        with_ein = make_income(payer_name="Acme", payer_ein="11-1111111")
        without_ein = make_income(payer_name="ACME INC")

        groups = group_by_employer([with_ein, without_ein])

        assert groups == {"ein:111111111": [with_ein, without_ein]}

    def test_threshold_parameter(self, make_income):
        a = make_income(payer_name="Acme Widgets")
        b = make_income(payer_name="Acme Widget")

        assert len(group_by_employer([a, b])) == 1
        assert len(group_by_employer([a, b], similarity_threshold=0.95)) == 2


class TestGroupByEmployerAndYear:
    def test_years_subpartitioned(self, make_income):
        w2_2023 = make_income(document_type="w2", tax_year=2023)
        w2_2024 = make_income(document_type="w2", tax_year=2024)
        stub_2024 = make_income(period_end=date(2024, 6, 14))

        groups = group_by_employer_and_year([w2_2023, w2_2024, stub_2024])

        assert groups == {"name:ACME": {2023: [w2_2023], 2024: [w2_2024, stub_2024]}}


class TestGroupHelpers:
    def test_best_name_prefers_paystub(self, make_income):
        group = [
            make_income(document_type="bank_statement", payer_name="ACME CORP DIR DEP"),
            make_income(document_type="w2", payer_name="Acme Corp."),
            make_income(document_type="paystub", payer_name="Acme Corporation"),
        ]
        assert get_best_employer_name(group) == "Acme Corporation"

    def test_best_name_w2_over_bank(self, make_income):
        group = [
            make_income(document_type="bank_statement", payer_name="ACME CORP DIR DEP"),
            make_income(document_type="w2", payer_name="Acme Corp."),
        ]
        assert get_best_employer_name(group) == "Acme Corp."

    def test_best_name_falls_back_to_first(self, make_income):
        group = [make_income(document_type="other", payer_name="Mystery Payer")]
        assert get_best_employer_name(group) == "Mystery Payer"

    def test_first_ein(self, make_income):
        group = [
            make_income(),
            make_income(payer_ein="12-3456789"),
            make_income(payer_ein="99-9999999"),
        ]
        assert get_employer_ein(group) == "12-3456789"

    def test_no_ein(self, make_income):
        assert get_employer_ein([make_income()]) is None
