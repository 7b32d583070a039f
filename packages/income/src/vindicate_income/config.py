"""Configuration for income reconciliation.

Every threshold, confidence factor and deduction assumption used by the
normalizer, employer matcher and reconciler lives here so that it can be
tuned per deployment and exercised independently of the algorithms.

Usage:
    from vindicate_income.config import IncomeConfig

    # Load from VINDICATE_INCOME_* environment variables
    config = IncomeConfig()

    print(config.matching.similarity_threshold)
    print(config.reconciliation.variance_threshold)
"""

from decimal import Decimal
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vindicate_income.models.income import DocumentType


class SummaryPolicy(str, Enum):
    """How multiple income years for one employer feed case totals."""

    LATEST_YEAR_PER_EMPLOYER = "latest_year_per_employer"
    AVERAGE_RECENT_YEARS = "average_recent_years"


# Lower number wins. Pay stubs and bank statements are timelier evidence of
# current income than annual official documents.
DEFAULT_SOURCE_PRIORITY: dict[DocumentType, int] = {
    DocumentType.PAYSTUB: 1,
    DocumentType.BANK_STATEMENT: 2,
    DocumentType.W2: 3,
    DocumentType.TAX_RETURN: 4,
    DocumentType.FORM_1099: 5,
}

# Order in which a printed employer name is trusted. Bank statements truncate.
DEFAULT_NAME_PRIORITY: tuple[DocumentType, ...] = (
    DocumentType.PAYSTUB,
    DocumentType.W2,
    DocumentType.TAX_RETURN,
    DocumentType.FORM_1099,
    DocumentType.BANK_STATEMENT,
)


class NormalizationConfig(BaseSettings):
    """Normalizer settings.

    Environment Variables:
        VINDICATE_INCOME_NORMALIZATION_ANNUAL_DOCUMENT_FACTOR
        VINDICATE_INCOME_NORMALIZATION_YTD_ALIGNED_THRESHOLD
        VINDICATE_INCOME_NORMALIZATION_PAYSTUB_NET_TO_GROSS
        VINDICATE_INCOME_NORMALIZATION_BANK_NET_TO_GROSS
        ... (one per field)
    """

    model_config = SettingsConfigDict(
        env_prefix="VINDICATE_INCOME_NORMALIZATION_",
        extra="ignore",
    )

    annual_document_factor: float = Field(
        default=0.95,
        gt=0.0,
        le=1.0,
        description="Confidence factor for W-2, tax return and 1099 figures",
    )
    ytd_aligned_factor: float = Field(default=0.95, gt=0.0, le=1.0)
    ytd_moderate_factor: float = Field(default=0.85, gt=0.0, le=1.0)
    ytd_divergent_factor: float = Field(default=0.70, gt=0.0, le=1.0)
    no_ytd_factor: float = Field(
        default=0.85,
        gt=0.0,
        le=1.0,
        description="Confidence factor when a pay stub has no usable YTD figures",
    )
    net_estimate_factor: float = Field(
        default=0.70,
        gt=0.0,
        le=1.0,
        description="Confidence factor when gross is estimated from a net pay stub",
    )
    bank_deposit_factor: float = Field(default=0.70, gt=0.0, le=1.0)
    unknown_document_factor: float = Field(default=0.60, gt=0.0, le=1.0)

    ytd_aligned_threshold: float = Field(
        default=0.10,
        gt=0.0,
        description="YTD vs direct variance below which YTD is trusted fully",
    )
    ytd_divergent_threshold: float = Field(
        default=0.25,
        gt=0.0,
        description="YTD vs direct variance at or above which direct multiplication wins",
    )

    paystub_net_to_gross: Decimal = Field(
        default=Decimal("1.35"),
        ge=Decimal("1"),
        description="Gross estimate multiplier for net pay stubs (~26% deductions)",
    )
    bank_net_to_gross: Decimal = Field(
        default=Decimal("1.30"),
        ge=Decimal("1"),
        description="Gross estimate multiplier for bank deposits (~23% deductions)",
    )

    @model_validator(mode="after")
    def ytd_thresholds_ordered(self):
        """The aligned threshold must not exceed the divergent one."""
        if self.ytd_aligned_threshold > self.ytd_divergent_threshold:
            raise ValueError("ytd_aligned_threshold must be <= ytd_divergent_threshold")
        return self


class MatchingConfig(BaseSettings):
    """Employer matcher settings.

    Environment Variables:
        VINDICATE_INCOME_MATCHING_SIMILARITY_THRESHOLD: Minimum score to join a group
        VINDICATE_INCOME_MATCHING_CONTAINMENT_FLOOR: Score for truncated names
        VINDICATE_INCOME_MATCHING_JACCARD_WEIGHT: Word-overlap weight for multi-word names
        VINDICATE_INCOME_MATCHING_MIN_WORD_LENGTH: Shortest word counted for overlap
    """

    model_config = SettingsConfigDict(
        env_prefix="VINDICATE_INCOME_MATCHING_",
        extra="ignore",
    )

    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    containment_floor: float = Field(default=0.85, ge=0.0, le=1.0)
    jaccard_weight: float = Field(default=0.8, ge=0.0, le=1.0)
    min_word_length: int = Field(default=3, ge=1)


class ReconciliationConfig(BaseSettings):
    """Reconciler settings.

    Environment Variables:
        VINDICATE_INCOME_RECONCILIATION_VARIANCE_THRESHOLD: Sources agree
        VINDICATE_INCOME_RECONCILIATION_HIGH_VARIANCE_THRESHOLD: Above this is a conflict
        VINDICATE_INCOME_RECONCILIATION_SUMMARY_POLICY: latest_year_per_employer or
            average_recent_years
        VINDICATE_INCOME_RECONCILIATION_SUMMARY_YEARS: Years averaged by that policy
    """

    model_config = SettingsConfigDict(
        env_prefix="VINDICATE_INCOME_RECONCILIATION_",
        extra="ignore",
    )

    variance_threshold: float = Field(default=0.10, gt=0.0)
    high_variance_threshold: float = Field(default=0.20, gt=0.0)
    large_discrepancy_threshold: float = Field(
        default=0.25,
        gt=0.0,
        description="Variance above which the resolution is always 'verify the documents'",
    )

    corroboration_boost: float = Field(default=1.15, ge=1.0)
    net_corroboration_boost: float = Field(default=1.10, ge=1.0)
    annual_conflict_factor: float = Field(default=0.70, gt=0.0, le=1.0)
    periodic_moderate_factor: float = Field(default=0.85, gt=0.0, le=1.0)
    periodic_conflict_factor: float = Field(default=0.60, gt=0.0, le=1.0)
    partial_year_factor: float = Field(default=0.85, gt=0.0, le=1.0)

    verified_confidence_floor: float = Field(
        default=0.70,
        ge=0.0,
        le=1.0,
        description="Single-source confidence needed for 'verified'",
    )
    full_year_min_quarters: int = Field(default=3, ge=1, le=4)
    assumed_paystub_net_ratio: Decimal = Field(
        default=Decimal("0.75"),
        gt=Decimal("0"),
        le=Decimal("1"),
        description="Net share of gross assumed when a pay stub carries no net figure",
    )

    source_priority: dict[DocumentType, int] = Field(
        default_factory=lambda: dict(DEFAULT_SOURCE_PRIORITY)
    )
    name_priority: tuple[DocumentType, ...] = DEFAULT_NAME_PRIORITY

    summary_policy: SummaryPolicy = SummaryPolicy.LATEST_YEAR_PER_EMPLOYER
    summary_years: int = Field(default=2, ge=1, le=10)

    @field_validator("summary_policy", mode="before")
    @classmethod
    def normalize_policy(cls, v):
        if isinstance(v, str) and not isinstance(v, SummaryPolicy):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def variance_thresholds_ordered(self):
        """variance <= high variance <= large discrepancy."""
        if not (
            self.variance_threshold
            <= self.high_variance_threshold
            <= self.large_discrepancy_threshold
        ):
            raise ValueError(
                "Expected variance_threshold <= high_variance_threshold "
                "<= large_discrepancy_threshold"
            )
        return self

    def priority_of(self, document_type: DocumentType) -> int:
        """Priority rank for a document type; unknown types rank last."""
        return self.source_priority.get(document_type, 99)


class IncomeConfig(BaseSettings):
    """Root configuration for income reconciliation.

    Example:
        config = IncomeConfig(
            matching=MatchingConfig(similarity_threshold=0.8),
        )
    """

    model_config = SettingsConfigDict(
        env_prefix="VINDICATE_INCOME_",
        extra="ignore",
    )

    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
