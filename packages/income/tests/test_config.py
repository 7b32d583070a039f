"""Tests for the configuration system."""

from decimal import Decimal

import pytest

from vindicate_income.config import (
    DEFAULT_SOURCE_PRIORITY,
    IncomeConfig,
    MatchingConfig,
    NormalizationConfig,
    ReconciliationConfig,
    SummaryPolicy,
)
from vindicate_income.models import DocumentType


class TestNormalizationConfig:
    """Test suite for NormalizationConfig."""

    def test_default_values(self):
        """Defaults match the documented confidence factors."""
        config = NormalizationConfig()

        assert config.annual_document_factor == 0.95
        assert config.ytd_aligned_factor == 0.95
        assert config.ytd_moderate_factor == 0.85
        assert config.ytd_divergent_factor == 0.70
        assert config.no_ytd_factor == 0.85
        assert config.net_estimate_factor == 0.70
        assert config.bank_deposit_factor == 0.70
        assert config.unknown_document_factor == 0.60
        assert config.paystub_net_to_gross == Decimal("1.35")
        assert config.bank_net_to_gross == Decimal("1.30")

    def test_factor_bounds(self):
        """Confidence factors must be in (0, 1]."""
        with pytest.raises(ValueError):
            NormalizationConfig(bank_deposit_factor=0.0)

        with pytest.raises(ValueError):
            NormalizationConfig(annual_document_factor=1.2)

    def test_net_to_gross_cannot_shrink(self):
        """Grossing up net pay never yields less than the net."""
        with pytest.raises(ValueError):
            NormalizationConfig(paystub_net_to_gross=Decimal("0.9"))

    def test_ytd_thresholds_ordered(self):
        with pytest.raises(ValueError):
            NormalizationConfig(ytd_aligned_threshold=0.3, ytd_divergent_threshold=0.2)

    def test_env_override(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("VINDICATE_INCOME_NORMALIZATION_BANK_NET_TO_GROSS", "1.25")

        config = NormalizationConfig()

        assert config.bank_net_to_gross == Decimal("1.25")


class TestMatchingConfig:
    """Test suite for MatchingConfig."""

    def test_default_values(self):
        config = MatchingConfig()

        assert config.similarity_threshold == 0.75
        assert config.containment_floor == 0.85
        assert config.jaccard_weight == 0.8
        assert config.min_word_length == 3

    def test_threshold_validation(self):
        """Similarity threshold must be between 0.0 and 1.0."""
        MatchingConfig(similarity_threshold=0.0)
        MatchingConfig(similarity_threshold=1.0)

        with pytest.raises(ValueError):
            MatchingConfig(similarity_threshold=1.1)

        with pytest.raises(ValueError):
            MatchingConfig(min_word_length=0)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("VINDICATE_INCOME_MATCHING_SIMILARITY_THRESHOLD", "0.8")

        assert MatchingConfig().similarity_threshold == 0.8


class TestReconciliationConfig:
    """Test suite for ReconciliationConfig."""

    def test_default_values(self):
        config = ReconciliationConfig()

        assert config.variance_threshold == 0.10
        assert config.high_variance_threshold == 0.20
        assert config.large_discrepancy_threshold == 0.25
        assert config.corroboration_boost == 1.15
        assert config.net_corroboration_boost == 1.10
        assert config.verified_confidence_floor == 0.70
        assert config.full_year_min_quarters == 3
        assert config.summary_policy == SummaryPolicy.LATEST_YEAR_PER_EMPLOYER
        assert config.source_priority == DEFAULT_SOURCE_PRIORITY

    def test_thresholds_must_be_ordered(self):
        """variance <= high variance <= large discrepancy."""
        with pytest.raises(ValueError):
            ReconciliationConfig(variance_threshold=0.3)

        with pytest.raises(ValueError):
            ReconciliationConfig(high_variance_threshold=0.3)

    def test_boost_cannot_reduce_confidence(self):
        with pytest.raises(ValueError):
            ReconciliationConfig(corroboration_boost=0.9)

    def test_summary_policy_case_insensitive(self):
        config = ReconciliationConfig(summary_policy="  Average_Recent_Years ")

        assert config.summary_policy == SummaryPolicy.AVERAGE_RECENT_YEARS

    def test_invalid_summary_policy(self):
        with pytest.raises(ValueError):
            ReconciliationConfig(summary_policy="sum_everything")

    def test_priority_of(self):
        """Pay stubs rank first; unknown documents rank last."""
        config = ReconciliationConfig()

        assert config.priority_of(DocumentType.PAYSTUB) == 1
        assert config.priority_of(DocumentType.W2) == 3
        assert config.priority_of(DocumentType.UNKNOWN) == 99

    def test_source_priority_is_per_instance(self):
        a = ReconciliationConfig()
        a.source_priority[DocumentType.W2] = 0

        assert ReconciliationConfig().priority_of(DocumentType.W2) == 3
        assert DEFAULT_SOURCE_PRIORITY[DocumentType.W2] == 3

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("VINDICATE_INCOME_RECONCILIATION_SUMMARY_POLICY", "AVERAGE_RECENT_YEARS")
        monkeypatch.setenv("VINDICATE_INCOME_RECONCILIATION_SUMMARY_YEARS", "3")

        config = ReconciliationConfig()

        assert config.summary_policy == SummaryPolicy.AVERAGE_RECENT_YEARS
        assert config.summary_years == 3

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("VINDICATE_INCOME_RECONCILIATION_VARIANCE_THRESHOLD", "0.5")

        with pytest.raises(ValueError):
            ReconciliationConfig()


class TestIncomeConfig:
    """Test suite for the root IncomeConfig."""

    def test_default_sections(self):
        config = IncomeConfig()

        assert isinstance(config.normalization, NormalizationConfig)
        assert isinstance(config.matching, MatchingConfig)
        assert isinstance(config.reconciliation, ReconciliationConfig)

    def test_sections_read_environment(self, monkeypatch):
        monkeypatch.setenv("VINDICATE_INCOME_MATCHING_CONTAINMENT_FLOOR", "0.9")
        monkeypatch.setenv("VINDICATE_INCOME_RECONCILIATION_FULL_YEAR_MIN_QUARTERS", "4")

        config = IncomeConfig()

        assert config.matching.containment_floor == 0.9
        assert config.reconciliation.full_year_min_quarters == 4

    def test_dotenv_in_working_directory_ignored(self, tmp_path, monkeypatch):
        """Only real environment variables are read, never a local .env file."""
        (tmp_path / ".env").write_text(
            "VINDICATE_INCOME_MATCHING_SIMILARITY_THRESHOLD=0.99\n"
            "VINDICATE_INCOME_NORMALIZATION_BANK_NET_TO_GROSS=1.5\n"
        )
        monkeypatch.chdir(tmp_path)

        config = IncomeConfig()

        assert config.matching.similarity_threshold == 0.75
        assert config.normalization.bank_net_to_gross == Decimal("1.30")

    def test_explicit_sections(self):
        config = IncomeConfig(matching=MatchingConfig(similarity_threshold=0.9))

        assert config.matching.similarity_threshold == 0.9
        assert config.reconciliation.variance_threshold == 0.10
