"""Reconciled income models.

A ReconciledIncomeSource is the single verified figure for one matched
employer in one income year. CaseIncomeSummary aggregates those sources
into the current monthly income used by the means test.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from vindicate_income.models.income import DocumentType, PayFrequency

_NON_DIGIT_RE = re.compile(r"\D")


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


class IncomeType(str, Enum):
    """Kind of income a reconciled source represents."""

    EMPLOYMENT = "employment"
    SELF_EMPLOYMENT = "self_employment"
    SOCIAL_SECURITY = "social_security"
    PENSION = "pension"
    RENTAL = "rental"
    OTHER = "other"


class ReconciliationStatus(str, Enum):
    """Outcome of reconciling an employer-year group."""

    VERIFIED = "verified"
    NEEDS_REVIEW = "needs_review"
    CONFLICT = "conflict"
    MANUAL = "manual"

    @property
    def requires_review(self) -> bool:
        return self in (ReconciliationStatus.NEEDS_REVIEW, ReconciliationStatus.CONFLICT)


class DeterminationMethod(str, Enum):
    """How the verified figure was determined."""

    SINGLE_SOURCE = "single_source"
    MULTI_SOURCE_MATCH = "multi_source_match"
    MULTI_SOURCE_AVERAGED = "multi_source_averaged"
    MANUAL_OVERRIDE = "manual_override"


class IncomeEvidence(BaseModel):
    """One contributing document behind a reconciled source."""

    model_config = {"frozen": True}

    document_id: str
    document_type: DocumentType
    document_name: str = Field(
        description="Display name, e.g. 'w2 - Acme Corp (2024)'"
    )
    extracted_amount: Decimal
    extracted_frequency: PayFrequency
    annualized_amount: Decimal
    confidence: float = Field(ge=0.0, le=1.0)
    period_covered: Optional[str] = None


class Discrepancy(BaseModel):
    """Why a source needs human review."""

    model_config = {"frozen": True}

    max_variance: float = Field(
        ge=0.0,
        description="Largest relative deviation of any document from the group mean",
    )
    conflicting_documents: tuple[str, ...] = ()
    suggested_resolution: str


class ReconciledIncomeSource(BaseModel):
    """A single verified income source after reconciling its documents.

    This is the figure used for means test calculations. A status of
    ``needs_review`` or ``conflict`` always carries a discrepancy, and no
    other status does.
    """

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": "5f0c8a3e-2c1b-5d7e-9b0a-3e1f2d4c6b8a",
                    "case_id": "case_123",
                    "employer_name": "Acme Corporation",
                    "employer_ein": "12-3456789",
                    "income_type": "employment",
                    "income_year": 2024,
                    "verified_annual_gross": "48000.00",
                    "verified_monthly_gross": "4000.00",
                    "determination_method": "multi_source_match",
                    "confidence": 0.98,
                    "status": "verified",
                }
            ]
        },
    }

    id: str
    case_id: str

    employer_name: str
    employer_ein: Optional[str] = None
    employer_group_key: Optional[str] = Field(
        default=None,
        description="Matcher group key shared by every year of this employer, e.g. 'ein:123456789'",
    )
    income_type: IncomeType = IncomeType.EMPLOYMENT
    income_year: int

    verified_annual_gross: Decimal
    verified_monthly_gross: Decimal
    verified_annual_net: Optional[Decimal] = None
    verified_monthly_net: Optional[Decimal] = None

    determination_method: DeterminationMethod
    evidence: tuple[IncomeEvidence, ...] = ()
    confidence: float = Field(ge=0.0, le=1.0)
    status: ReconciliationStatus
    discrepancy: Optional[Discrepancy] = None
    notes: tuple[str, ...] = Field(
        default=(),
        description="Human-readable trail explaining how the figure was reached",
    )

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None

    @model_validator(mode="after")
    def discrepancy_matches_status(self):
        """A discrepancy is present exactly when the source needs review."""
        if self.status.requires_review and self.discrepancy is None:
            raise ValueError(f"status {self.status.value} requires a discrepancy")
        if not self.status.requires_review and self.discrepancy is not None:
            raise ValueError(f"status {self.status.value} must not carry a discrepancy")
        return self

    @property
    def employer_key(self) -> str:
        """Identity used to collapse the same employer across years.

        The matcher's group key when present; otherwise the digits of the EIN,
        then the lowercased name.
        """
        if self.employer_group_key:
            return self.employer_group_key
        if self.employer_ein:
            digits = _NON_DIGIT_RE.sub("", self.employer_ein)
            if digits:
                return f"ein:{digits}"
        return f"name:{self.employer_name.lower()}"


class CaseIncomeSummary(BaseModel):
    """Aggregate income for a case, used in the means test."""

    model_config = {"frozen": True}

    case_id: str
    sources: tuple[ReconciledIncomeSource, ...] = Field(
        default=(),
        description="All reconciled sources, including those excluded from totals",
    )

    total_annual_gross: Decimal = Decimal("0")
    total_monthly_gross: Decimal = Decimal("0")
    total_monthly_net: Optional[Decimal] = None

    all_sources_reconciled: bool = True
    sources_needing_review: tuple[str, ...] = ()

    last_calculated_at: datetime = Field(default_factory=_utc_now)

    @computed_field
    @property
    def current_monthly_income(self) -> Decimal:
        """Current monthly income (CMI) for the eligibility calculation."""
        return self.total_monthly_gross


class ReconciliationResult(BaseModel):
    """Output of a full reconciliation run."""

    model_config = {"frozen": True}

    sources: tuple[ReconciledIncomeSource, ...] = ()
    summary: CaseIncomeSummary
