"""Income normalization.

Converts a single RawIncomeExtraction into annualized and monthly figures.
Each document type has its own strategy:

- W-2, tax return, 1099: already annual, taken as-is
- Pay stub: YTD extrapolation when it agrees with the per-period amount,
  direct multiplication otherwise
- Bank statement: deposits are net; gross is estimated
- Anything else: direct multiplication at reduced confidence

Normalization never raises for a well-typed extraction. Missing or odd data
lowers the confidence and adds a note instead.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .config import NormalizationConfig
from .exceptions import ValidationError
from .models import (
    AmountType,
    DocumentType,
    NormalizationMethod,
    NormalizedIncome,
    PayFrequency,
    RawIncomeExtraction,
)

logger = structlog.get_logger()

MONTHS_PER_YEAR = Decimal("12")
DAYS_PER_YEAR = Decimal("365")

# One-time payments are never annualized by multiplication.
ANNUAL_MULTIPLIERS: dict[PayFrequency, Decimal] = {
    PayFrequency.ANNUAL: Decimal("1"),
    PayFrequency.MONTHLY: Decimal("12"),
    PayFrequency.SEMI_MONTHLY: Decimal("24"),
    PayFrequency.BIWEEKLY: Decimal("26"),
    PayFrequency.WEEKLY: Decimal("52"),
    PayFrequency.ONE_TIME: Decimal("1"),
}

# Applied after upper-casing and punctuation removal.
BUSINESS_SUFFIXES = (
    "INC",
    "LLC",
    "CORP",
    "CORPORATION",
    "COMPANY",
    "CO",
    "LTD",
    "LIMITED",
    "LP",
    "LLP",
    "PC",
    "PLLC",
    "NA",
    "FSB",
)

_PUNCTUATION_RE = re.compile(r"""[.,/#!$%^&*;:{}=\-_`~()'"]""")
_SUFFIX_RE = re.compile(r"\b(" + "|".join(BUSINESS_SUFFIXES) + r")\b")
_WHITESPACE_RE = re.compile(r"\s+")

# Years at or before this are treated as extraction noise.
_MIN_PLAUSIBLE_YEAR = 2000


class NormalizationResult(BaseModel):
    """Figures produced by normalizing one extraction."""

    model_config = {"frozen": True}

    annualized_gross: Decimal
    monthly_gross: Decimal
    annualized_net: Optional[Decimal] = None
    monthly_net: Optional[Decimal] = None
    method: NormalizationMethod
    confidence: float
    notes: tuple[str, ...] = ()


# =============================================================================
# FREQUENCY HELPERS
# =============================================================================


def annualize_amount(amount: Decimal, frequency: PayFrequency) -> Decimal:
    """Convert a per-period amount to an annual figure.

    Unknown frequencies are treated as monthly.
    """
    multiplier = ANNUAL_MULTIPLIERS.get(frequency)
    if multiplier is None:
        logger.warning("unknown_frequency", frequency=str(frequency), assumed="monthly")
        multiplier = ANNUAL_MULTIPLIERS[PayFrequency.MONTHLY]
    return amount * multiplier


def monthly_from_annual(annual: Decimal) -> Decimal:
    """Convert an annual amount to monthly."""
    return annual / MONTHS_PER_YEAR


def _monthly_or_none(annual: Optional[Decimal]) -> Optional[Decimal]:
    return monthly_from_annual(annual) if annual else None


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


# =============================================================================
# PER-DOCUMENT STRATEGIES
# =============================================================================


def _normalize_annual_document(
    extraction: RawIncomeExtraction, config: NormalizationConfig
) -> NormalizationResult:
    """W-2, tax return or 1099: the raw amount is the annual figure."""
    return NormalizationResult(
        annualized_gross=extraction.raw_amount,
        monthly_gross=monthly_from_annual(extraction.raw_amount),
        method=NormalizationMethod.DIRECT,
        confidence=extraction.extraction_confidence * config.annual_document_factor,
    )


def _normalize_paystub(
    extraction: RawIncomeExtraction, config: NormalizationConfig
) -> NormalizationResult:
    """Pay stub: prefer YTD extrapolation, which captures raises and bonuses.

    The YTD figure is only trusted when it roughly agrees with the per-period
    amount multiplied out. A large disagreement usually means the YTD figure
    or the period date was misread, so direct multiplication wins.
    """
    notes: list[str] = []
    confidence = extraction.extraction_confidence
    annualized_net: Optional[Decimal] = None
    direct = annualize_amount(extraction.raw_amount, extraction.frequency)

    if extraction.ytd_gross and extraction.ytd_gross > 0 and extraction.period_end:
        day_of_year = extraction.period_end.timetuple().tm_yday
        extrapolated = extraction.ytd_gross / day_of_year * DAYS_PER_YEAR
        variance = float(abs(extrapolated - direct) / direct) if direct > 0 else 0.0

        if variance < config.ytd_aligned_threshold:
            annualized_gross = extrapolated
            method = NormalizationMethod.YTD_EXTRAPOLATED
            confidence *= config.ytd_aligned_factor
            notes.append(
                f"YTD extrapolation matches direct calculation ({_pct(variance)} variance)"
            )
        elif variance < config.ytd_divergent_threshold:
            annualized_gross = extrapolated
            method = NormalizationMethod.YTD_EXTRAPOLATED
            confidence *= config.ytd_moderate_factor
            notes.append(
                f"YTD extrapolation differs from direct calc by {_pct(variance)} "
                "- possible raise, bonus, or variable hours"
            )
        else:
            annualized_gross = direct
            method = NormalizationMethod.MULTIPLIED
            confidence *= config.ytd_divergent_factor
            notes.append(
                f"Large variance ({_pct(variance)}) between YTD and direct calc "
                "- using direct multiplication, review recommended"
            )

        if extraction.ytd_net and extraction.ytd_net > 0:
            annualized_net = extraction.ytd_net / day_of_year * DAYS_PER_YEAR
    else:
        annualized_gross = direct
        method = NormalizationMethod.MULTIPLIED
        confidence *= config.no_ytd_factor

    if extraction.amount_type == AmountType.NET:
        # The stub amount we multiplied out was take-home pay.
        annualized_net = annualized_gross
        annualized_gross = annualized_net * config.paystub_net_to_gross
        confidence *= config.net_estimate_factor
        deduction = 1 - 1 / config.paystub_net_to_gross
        notes.append(
            f"Gross estimated from net amount (assumed ~{deduction * 100:.0f}% deductions)"
        )

    return NormalizationResult(
        annualized_gross=annualized_gross,
        monthly_gross=monthly_from_annual(annualized_gross),
        annualized_net=annualized_net,
        monthly_net=_monthly_or_none(annualized_net),
        method=method,
        confidence=confidence,
        notes=tuple(notes),
    )


def _normalize_bank_deposit(
    extraction: RawIncomeExtraction, config: NormalizationConfig
) -> NormalizationResult:
    """Bank deposit: always net pay, so gross can only be estimated."""
    annualized_net = annualize_amount(extraction.raw_amount, extraction.frequency)
    annualized_gross = annualized_net * config.bank_net_to_gross
    deduction = 1 - 1 / config.bank_net_to_gross

    return NormalizationResult(
        annualized_gross=annualized_gross,
        monthly_gross=monthly_from_annual(annualized_gross),
        annualized_net=annualized_net,
        monthly_net=monthly_from_annual(annualized_net),
        method=NormalizationMethod.DEPOSIT_PATTERN,
        confidence=extraction.extraction_confidence * config.bank_deposit_factor,
        notes=(
            "Bank deposit provides net income only",
            f"Gross estimated using ~{deduction * 100:.0f}% deduction assumption",
        ),
    )


def _normalize_unknown(
    extraction: RawIncomeExtraction, config: NormalizationConfig
) -> NormalizationResult:
    logger.warning(
        "unknown_document_type",
        extraction_id=extraction.id,
        document_type=extraction.document_type.value,
    )
    annualized_gross = annualize_amount(extraction.raw_amount, extraction.frequency)
    return NormalizationResult(
        annualized_gross=annualized_gross,
        monthly_gross=monthly_from_annual(annualized_gross),
        method=NormalizationMethod.MULTIPLIED,
        confidence=extraction.extraction_confidence * config.unknown_document_factor,
        notes=("Unknown document type - using basic multiplication",),
    )


def normalize_extraction(
    extraction: RawIncomeExtraction,
    config: Optional[NormalizationConfig] = None,
) -> NormalizationResult:
    """Compute normalized figures for one extraction, routed by document type."""
    config = config or NormalizationConfig()

    if extraction.document_type.is_annual:
        return _normalize_annual_document(extraction, config)
    if extraction.document_type == DocumentType.PAYSTUB:
        return _normalize_paystub(extraction, config)
    if extraction.document_type == DocumentType.BANK_STATEMENT:
        return _normalize_bank_deposit(extraction, config)
    return _normalize_unknown(extraction, config)


# =============================================================================
# EMPLOYER NAME AND PERIOD METADATA
# =============================================================================


def normalize_employer_name(name: str) -> str:
    """Normalize an employer name for matching across documents.

    Upper-cases, strips punctuation and business-entity suffixes, and
    collapses whitespace, so "Acme Corp." and "ACME CORPORATION" both become
    "ACME".
    """
    name = _PUNCTUATION_RE.sub("", name.upper())
    name = _SUFFIX_RE.sub("", name)
    return _WHITESPACE_RE.sub(" ", name).strip()


def _plausible_year(value: Optional[date]) -> Optional[int]:
    if value is not None and value.year > _MIN_PLAUSIBLE_YEAR:
        return value.year
    return None


def get_income_year(extraction: RawIncomeExtraction, today: Optional[date] = None) -> int:
    """Year the income applies to.

    Priority: tax year, period end, period start, document date, current year.
    """
    if extraction.tax_year:
        return extraction.tax_year

    for candidate in (extraction.period_end, extraction.period_start, extraction.document_date):
        year = _plausible_year(candidate)
        if year is not None:
            return year

    return (today or date.today()).year


def get_quarter(value: Optional[date]) -> Optional[int]:
    """Calendar quarter (1-4) of a date."""
    if value is None:
        return None
    return (value.month + 2) // 3


def create_normalized_income(
    extraction: RawIncomeExtraction,
    id: Optional[str] = None,
    config: Optional[NormalizationConfig] = None,
    today: Optional[date] = None,
) -> NormalizedIncome:
    """Build the full NormalizedIncome record for one extraction.

    Args:
        extraction: Validated extraction from the upstream extractor.
        id: Identifier for the new record. Defaults to ``norm_<extraction id>``.
        config: Normalization tuning. Defaults to environment settings.
        today: Reference date for the current-year fallback.

    Returns:
        A new immutable NormalizedIncome.
    """
    result = normalize_extraction(extraction, config)
    is_annual = extraction.document_type.is_annual

    normalized = NormalizedIncome(
        id=id or f"norm_{extraction.id}",
        extraction_id=extraction.id,
        document_id=extraction.document_id,
        document_type=extraction.document_type,
        employer_normalized=normalize_employer_name(extraction.payer_name),
        employer_original=extraction.payer_name,
        employer_ein=extraction.payer_ein,
        annualized_gross=result.annualized_gross,
        monthly_gross=result.monthly_gross,
        annualized_net=result.annualized_net,
        monthly_net=result.monthly_net,
        normalization_method=result.method,
        confidence=result.confidence,
        notes=result.notes,
        income_year=get_income_year(extraction, today),
        is_annual_document=is_annual,
        period_quarter=None if is_annual else get_quarter(extraction.period_end),
        raw_extraction=extraction,
    )

    logger.info(
        "income_normalized",
        extraction_id=extraction.id,
        document_type=extraction.document_type.value,
        method=normalized.normalization_method.value,
        annualized_gross=str(normalized.annualized_gross),
        confidence=round(normalized.confidence, 4),
        income_year=normalized.income_year,
    )
    return normalized


normalize = create_normalized_income


def normalize_all(
    extractions: Iterable[RawIncomeExtraction],
    config: Optional[NormalizationConfig] = None,
    today: Optional[date] = None,
) -> list[NormalizedIncome]:
    """Normalize a batch of extractions, assigning positional ids ``norm_<idx>``."""
    config = config or NormalizationConfig()
    return [
        create_normalized_income(extraction, f"norm_{idx}", config, today)
        for idx, extraction in enumerate(extractions)
    ]


def parse_extractions(records: Iterable[dict]) -> list[RawIncomeExtraction]:
    """Validate upstream records into RawIncomeExtraction values.

    Raises:
        ValidationError: If a record is missing required fields or has
            values of the wrong type. The error carries the record index.
    """
    extractions = []
    for index, record in enumerate(records):
        try:
            extractions.append(RawIncomeExtraction.model_validate(record))
        except PydanticValidationError as e:
            errors = [
                {"loc": tuple(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ]
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in errors)
            raise ValidationError(
                f"Extraction {index} is invalid: {fields}",
                index=index,
                errors=errors,
            ) from e
    return extractions
