"""Per-document income models.

This module defines the two shapes that flow into reconciliation:
- RawIncomeExtraction: one document's income claim, as produced upstream
- NormalizedIncome: the same claim converted to annual/monthly figures

Both are immutable. A new extraction produces a new NormalizedIncome rather
than updating an existing one.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMERATIONS
# =============================================================================


class DocumentType(str, Enum):
    """Income-bearing document types."""

    W2 = "w2"
    PAYSTUB = "paystub"
    BANK_STATEMENT = "bank_statement"
    TAX_RETURN = "tax_return"
    FORM_1099 = "1099"
    UNKNOWN = "unknown"

    @property
    def is_annual(self) -> bool:
        """W-2s, tax returns and 1099s summarize a full year."""
        return self in ANNUAL_DOCUMENT_TYPES


ANNUAL_DOCUMENT_TYPES = frozenset(
    {DocumentType.W2, DocumentType.TAX_RETURN, DocumentType.FORM_1099}
)


class PayFrequency(str, Enum):
    """How often the extracted amount is paid."""

    ANNUAL = "annual"
    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi_monthly"  # 1st and 15th
    BIWEEKLY = "biweekly"  # every two weeks
    WEEKLY = "weekly"
    ONE_TIME = "one_time"
    UNKNOWN = "unknown"


class AmountType(str, Enum):
    """Whether an extracted amount is before or after deductions."""

    GROSS = "gross"
    NET = "net"
    UNKNOWN = "unknown"


class NormalizationMethod(str, Enum):
    """How an annualized figure was derived."""

    DIRECT = "direct"
    MULTIPLIED = "multiplied"
    YTD_EXTRAPOLATED = "ytd_extrapolated"
    DEPOSIT_PATTERN = "deposit_pattern"


# Spellings seen in LLM output and legacy income records
DOCUMENT_TYPE_ALIASES: dict[str, DocumentType] = {
    "paystub": DocumentType.PAYSTUB,
    "pay_stub": DocumentType.PAYSTUB,
    "pay-stub": DocumentType.PAYSTUB,
    "w2": DocumentType.W2,
    "w-2": DocumentType.W2,
    "tax_return": DocumentType.TAX_RETURN,
    "tax-return": DocumentType.TAX_RETURN,
    "1040": DocumentType.TAX_RETURN,
    "bank_statement": DocumentType.BANK_STATEMENT,
    "bank-statement": DocumentType.BANK_STATEMENT,
    "1099": DocumentType.FORM_1099,
    "1099-misc": DocumentType.FORM_1099,
    "1099-nec": DocumentType.FORM_1099,
}

FREQUENCY_ALIASES: dict[str, PayFrequency] = {
    "weekly": PayFrequency.WEEKLY,
    "bi-weekly": PayFrequency.BIWEEKLY,
    "biweekly": PayFrequency.BIWEEKLY,
    "bi_weekly": PayFrequency.BIWEEKLY,
    "semi-monthly": PayFrequency.SEMI_MONTHLY,
    "semi_monthly": PayFrequency.SEMI_MONTHLY,
    "monthly": PayFrequency.MONTHLY,
    "annual": PayFrequency.ANNUAL,
    "yearly": PayFrequency.ANNUAL,
    "one-time": PayFrequency.ONE_TIME,
    "one_time": PayFrequency.ONE_TIME,
}


# =============================================================================
# RAW EXTRACTION
# =============================================================================


class RawIncomeExtraction(BaseModel):
    """One document's income claim before normalization.

    Produced by the extraction step (OCR + LLM) and validated at the
    boundary. Unknown document types and frequencies coerce to their
    ``unknown`` arm so that normalization can degrade instead of fail.
    """

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": "ext_1",
                    "document_id": "doc_1",
                    "document_type": "paystub",
                    "document_date": "2024-03-15",
                    "raw_amount": "2000.00",
                    "frequency": "biweekly",
                    "amount_type": "gross",
                    "payer_name": "Acme Corporation",
                    "period_start": "2024-03-01",
                    "period_end": "2024-03-14",
                    "ytd_gross": "11000.00",
                    "extraction_confidence": 0.9,
                }
            ]
        },
    }

    id: str = Field(description="Identifier of this extraction")
    document_id: str = Field(description="Document the extraction came from")
    document_type: DocumentType = Field(description="Kind of source document")
    document_date: Optional[date] = Field(
        default=None,
        description="Date printed on or assigned to the document",
    )

    raw_amount: Decimal = Field(description="Income amount exactly as shown on the document")
    frequency: PayFrequency = Field(
        default=PayFrequency.UNKNOWN,
        description="Payment frequency determined from the document",
    )
    amount_type: AmountType = Field(
        default=AmountType.UNKNOWN,
        description="Whether raw_amount is gross or net pay",
    )

    payer_name: str = Field(description="Employer or payer name as printed")
    payer_ein: Optional[str] = Field(
        default=None,
        description="Employer identification number, any formatting",
    )

    period_start: Optional[date] = None
    period_end: Optional[date] = None
    tax_year: Optional[int] = Field(
        default=None,
        description="Explicit tax year for annual documents",
    )

    is_payroll_deposit: Optional[bool] = None
    deposit_description: Optional[str] = None

    ytd_gross: Optional[Decimal] = None
    ytd_net: Optional[Decimal] = None
    ytd_federal_withheld: Optional[Decimal] = None

    hours_worked: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None

    extraction_confidence: float = Field(
        ge=0.0,
        le=1.0,
        description="Extraction confidence reported by the LLM (0.0 to 1.0)",
    )
    source_text: Optional[str] = Field(
        default=None,
        description="Raw text snippet the values were extracted from",
    )

    @field_validator("document_type", mode="before")
    @classmethod
    def coerce_document_type(cls, v):
        """Map known spellings onto DocumentType, anything else to UNKNOWN."""
        if isinstance(v, DocumentType):
            return v
        if isinstance(v, str):
            return DOCUMENT_TYPE_ALIASES.get(v.strip().lower(), DocumentType.UNKNOWN)
        return v

    @field_validator("frequency", mode="before")
    @classmethod
    def coerce_frequency(cls, v):
        """Map known spellings onto PayFrequency, anything else to UNKNOWN."""
        if v is None:
            return PayFrequency.UNKNOWN
        if isinstance(v, PayFrequency):
            return v
        if isinstance(v, str):
            return FREQUENCY_ALIASES.get(v.strip().lower(), PayFrequency.UNKNOWN)
        return v

    @field_validator("amount_type", mode="before")
    @classmethod
    def coerce_amount_type(cls, v):
        if v is None:
            return AmountType.UNKNOWN
        if isinstance(v, str) and not isinstance(v, AmountType):
            try:
                return AmountType(v.strip().lower())
            except ValueError:
                return AmountType.UNKNOWN
        return v


# =============================================================================
# NORMALIZED INCOME
# =============================================================================


class NormalizedIncome(BaseModel):
    """Income from one extraction, converted to annual and monthly figures.

    ``monthly_gross`` is always ``annualized_gross / 12``.
    """

    model_config = {"frozen": True}

    id: str
    extraction_id: str
    document_id: str
    document_type: DocumentType

    employer_normalized: str = Field(
        description="Upper-cased, punctuation and suffix stripped employer name"
    )
    employer_original: str
    employer_ein: Optional[str] = None

    annualized_gross: Decimal
    monthly_gross: Decimal
    annualized_net: Optional[Decimal] = None
    monthly_net: Optional[Decimal] = None

    normalization_method: NormalizationMethod
    confidence: float = Field(ge=0.0, le=1.0)
    notes: tuple[str, ...] = ()

    income_year: int
    is_annual_document: bool
    period_quarter: Optional[int] = Field(
        default=None,
        ge=1,
        le=4,
        description="Calendar quarter of period_end, periodic documents only",
    )

    raw_extraction: RawIncomeExtraction
