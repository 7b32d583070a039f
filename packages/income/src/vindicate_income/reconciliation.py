"""Income reconciliation engine.

Reconciles income from multiple document sources into verified income
figures. Different documents for the same job describe the SAME income at
different frequencies; they are reconciled into one figure, never summed.

The unit of reconciliation is an employer-year group: every normalized
income attributed to one matched employer within one income year.

Source priority when one document has to be picked over another:
1. Pay stubs (most frequent, show both gross and net)
2. Bank statements (corroborate net deposits)
3. W-2 (annual, official)
4. Tax returns (annual, official)
5. 1099 forms
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from .config import IncomeConfig, ReconciliationConfig, SummaryPolicy
from .employer_matching import (
    get_best_employer_name,
    get_employer_ein,
    group_by_employer_and_year,
    normalize_ein,
)
from .exceptions import ConfigurationError
from .models import (
    CaseIncomeSummary,
    DeterminationMethod,
    Discrepancy,
    DocumentType,
    IncomeEvidence,
    IncomeType,
    NormalizedIncome,
    RawIncomeExtraction,
    ReconciledIncomeSource,
    ReconciliationResult,
    ReconciliationStatus,
)
from .normalization import monthly_from_annual, normalize_all

logger = structlog.get_logger()

# Namespace for deterministic source ids: same case, employer and year
# always yield the same id.
SOURCE_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "vindicate:reconciled-income-source")

ZERO = Decimal("0")


@dataclass(frozen=True)
class VarianceStats:
    """Spread of a set of annualized amounts."""

    mean: Decimal
    max_variance: float
    std_dev: Decimal


def calculate_variance(amounts: list[Decimal]) -> VarianceStats:
    """Mean, largest relative deviation from the mean, and population std-dev."""
    if not amounts:
        return VarianceStats(ZERO, 0.0, ZERO)
    if len(amounts) == 1:
        return VarianceStats(amounts[0], 0.0, ZERO)

    mean = sum(amounts, ZERO) / len(amounts)
    max_diff = max(abs(a - mean) for a in amounts)
    max_variance = float(max_diff / mean) if mean > 0 else 0.0
    std_dev = (sum(((a - mean) ** 2 for a in amounts), ZERO) / len(amounts)).sqrt()
    return VarianceStats(mean, max_variance, std_dev)


def relative_difference(a: Decimal, b: Decimal) -> float:
    """|a - b| relative to the larger of the two."""
    larger = max(a, b)
    if larger <= 0:
        return 0.0
    return float(abs(a - b) / larger)


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def _doc_label(document_type: DocumentType) -> str:
    return document_type.value.upper()


@dataclass
class _Determination:
    """Working state while a group is being reconciled."""

    status: ReconciliationStatus
    method: DeterminationMethod
    annual_gross: Decimal
    annual_net: Optional[Decimal]
    confidence: float


class IncomeReconciler:
    """
    Reconcile normalized incomes into one verified figure per employer-year.

    Every decision is logged and recorded in the source's notes so that a
    reviewer can see how each figure was reached.
    """

    def __init__(self, config: Optional[IncomeConfig] = None):
        """
        Initialize the reconciler.

        Args:
            config: Tuning for matching and reconciliation (default: environment)

        Raises:
            ConfigurationError: If the thresholds are inconsistent.
        """
        self.config = config or IncomeConfig()
        self._check_config()

    @property
    def settings(self) -> ReconciliationConfig:
        return self.config.reconciliation

    def _check_config(self) -> None:
        """Reject settings that bypassed validation with inconsistent values."""
        s = self.settings
        if not (s.variance_threshold <= s.high_variance_threshold <= s.large_discrepancy_threshold):
            raise ConfigurationError(
                "Variance thresholds are out of order",
                config_key="reconciliation.variance_threshold",
                expected="variance <= high_variance <= large_discrepancy",
                actual=[
                    s.variance_threshold,
                    s.high_variance_threshold,
                    s.large_discrepancy_threshold,
                ],
            )
        threshold = self.config.matching.similarity_threshold
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(
                "Similarity threshold must be between 0 and 1",
                config_key="matching.similarity_threshold",
                expected="0.0 <= threshold <= 1.0",
                actual=threshold,
            )

    # -------------------------------------------------------------------------
    # Group classification helpers
    # -------------------------------------------------------------------------

    def _by_priority(self, incomes: list[NormalizedIncome]) -> list[NormalizedIncome]:
        return sorted(incomes, key=lambda i: self.settings.priority_of(i.document_type))

    def _quarters(self, incomes: list[NormalizedIncome]) -> set[int]:
        return {
            i.period_quarter
            for i in incomes
            if not i.is_annual_document and i.period_quarter
        }

    def _status_for(self, confidence: float) -> ReconciliationStatus:
        if confidence >= self.settings.verified_confidence_floor:
            return ReconciliationStatus.VERIFIED
        return ReconciliationStatus.NEEDS_REVIEW

    # -------------------------------------------------------------------------
    # Determination
    # -------------------------------------------------------------------------

    def _determine_with_annual(
        self,
        annual_docs: list[NormalizedIncome],
        periodic_docs: list[NormalizedIncome],
        notes: list[str],
    ) -> _Determination:
        """An annual document is legally authoritative for its year.

        Periodic documents from the same year corroborate it; they never add
        to it.
        """
        s = self.settings
        annual = self._by_priority(annual_docs)[0]
        label = _doc_label(annual.document_type)
        result = _Determination(
            status=self._status_for(annual.confidence),
            method=DeterminationMethod.SINGLE_SOURCE,
            annual_gross=annual.annualized_gross,
            annual_net=annual.annualized_net,
            confidence=annual.confidence,
        )

        if not periodic_docs:
            notes.append(f"Based on {label} only")
            return result

        periodic_gross = [d.annualized_gross for d in periodic_docs if d.annualized_gross > 0]
        if not periodic_gross:
            notes.append(f"Based on {label}; periodic documents carried no usable amount")
            return result

        periodic_mean = sum(periodic_gross, ZERO) / len(periodic_gross)
        variance = relative_difference(annual.annualized_gross, periodic_mean)

        if variance <= s.variance_threshold:
            result.status = ReconciliationStatus.VERIFIED
            result.method = DeterminationMethod.MULTI_SOURCE_MATCH
            result.confidence = min(1.0, annual.confidence * s.corroboration_boost)
            notes.append(
                f"{label} corroborated by {len(periodic_docs)} periodic document(s) "
                f"({_pct(variance)} variance)"
            )
        elif variance <= s.high_variance_threshold:
            result.status = ReconciliationStatus.NEEDS_REVIEW
            result.method = DeterminationMethod.MULTI_SOURCE_AVERAGED
            notes.append(f"{label} differs from annualized periodic documents by {_pct(variance)}")
        else:
            result.status = ReconciliationStatus.CONFLICT
            result.method = DeterminationMethod.MULTI_SOURCE_AVERAGED
            result.confidence = annual.confidence * s.annual_conflict_factor
            notes.append(
                f"Large variance ({_pct(variance)}) between {label} and periodic documents"
            )
        return result

    def _determine_periodic_only(
        self,
        periodic_docs: list[NormalizedIncome],
        notes: list[str],
    ) -> _Determination:
        """Only pay stubs and/or bank statements: compare them to each other."""
        s = self.settings
        gross_stats = calculate_variance(
            [d.annualized_gross for d in periodic_docs if d.annualized_gross > 0]
        )
        net_stats = calculate_variance(
            [d.annualized_net for d in periodic_docs if d.annualized_net and d.annualized_net > 0]
        )
        full_year = len(self._quarters(periodic_docs)) >= s.full_year_min_quarters

        if len(periodic_docs) == 1:
            only = periodic_docs[0]
            confidence = only.confidence
            if not full_year:
                notes.append("Annualized from partial year data")
                confidence *= s.partial_year_factor
            return _Determination(
                status=self._status_for(only.confidence),
                method=DeterminationMethod.SINGLE_SOURCE,
                annual_gross=only.annualized_gross,
                annual_net=only.annualized_net,
                confidence=confidence,
            )

        if gross_stats.max_variance <= s.variance_threshold:
            notes.append(
                f"{len(periodic_docs)} periodic documents agree within "
                f"{_pct(gross_stats.max_variance)}"
            )
            if not full_year:
                notes.append("Annualized from partial year data")
            return _Determination(
                status=ReconciliationStatus.VERIFIED,
                method=DeterminationMethod.MULTI_SOURCE_MATCH,
                annual_gross=gross_stats.mean,
                annual_net=net_stats.mean or None,
                confidence=min(1.0, max(d.confidence for d in periodic_docs) * s.corroboration_boost),
            )

        primary = self._by_priority(periodic_docs)[0]
        if gross_stats.max_variance <= s.high_variance_threshold:
            status = ReconciliationStatus.NEEDS_REVIEW
            confidence = primary.confidence * s.periodic_moderate_factor
        else:
            status = ReconciliationStatus.CONFLICT
            confidence = primary.confidence * s.periodic_conflict_factor
        notes.append(
            f"Periodic documents vary by up to {_pct(gross_stats.max_variance)}; "
            f"using {primary.document_type.value} figures"
        )
        result = _Determination(
            status=status,
            method=DeterminationMethod.MULTI_SOURCE_AVERAGED,
            annual_gross=primary.annualized_gross,
            annual_net=primary.annualized_net,
            confidence=confidence,
        )
        self._apply_net_corroboration(periodic_docs, result, notes)
        return result

    def _apply_net_corroboration(
        self,
        periodic_docs: list[NormalizedIncome],
        result: _Determination,
        notes: list[str],
    ) -> None:
        """Pay stub net matching bank deposits corroborates the pay stub gross.

        Apparent gross conflicts between a pay stub and a bank statement are
        often just gross-versus-net confusion.
        """
        paystub = next((d for d in periodic_docs if d.document_type == DocumentType.PAYSTUB), None)
        bank = next(
            (d for d in periodic_docs if d.document_type == DocumentType.BANK_STATEMENT), None
        )
        if not (paystub and bank and paystub.annualized_net and bank.annualized_net):
            return

        net_variance = relative_difference(paystub.annualized_net, bank.annualized_net)
        if net_variance >= self.settings.variance_threshold:
            return

        result.status = ReconciliationStatus.VERIFIED
        result.method = DeterminationMethod.MULTI_SOURCE_MATCH
        result.annual_gross = paystub.annualized_gross
        result.annual_net = paystub.annualized_net
        result.confidence = min(1.0, paystub.confidence * self.settings.net_corroboration_boost)
        notes.append(
            f"Pay stub gross corroborated by bank statement net deposits "
            f"({_pct(net_variance)} net variance)"
        )

    # -------------------------------------------------------------------------
    # Evidence and discrepancy
    # -------------------------------------------------------------------------

    def _build_evidence(
        self, group: list[NormalizedIncome], income_year: int
    ) -> tuple[IncomeEvidence, ...]:
        evidence = []
        for income in group:
            raw = income.raw_extraction
            if income.is_annual_document:
                period = f"{income_year} (annual)"
            elif raw.period_start and raw.period_end:
                period = f"{raw.period_start.isoformat()} to {raw.period_end.isoformat()}"
            else:
                period = str(income_year)
            evidence.append(
                IncomeEvidence(
                    document_id=income.document_id,
                    document_type=income.document_type,
                    document_name=(
                        f"{income.document_type.value} - {income.employer_original} ({income_year})"
                    ),
                    extracted_amount=raw.raw_amount,
                    extracted_frequency=raw.frequency,
                    annualized_amount=income.annualized_gross,
                    confidence=income.confidence,
                    period_covered=period,
                )
            )
        return tuple(evidence)

    def suggest_resolution(
        self,
        group: list[NormalizedIncome],
        variance: float,
        income_year: int,
    ) -> str:
        """Pick a reviewer-facing suggestion from a fixed decision table."""
        s = self.settings
        types = {i.document_type for i in group}
        has_paystub = DocumentType.PAYSTUB in types
        has_w2 = DocumentType.W2 in types
        has_bank = DocumentType.BANK_STATEMENT in types
        has_annual = any(i.is_annual_document for i in group)
        has_periodic = any(not i.is_annual_document for i in group)

        if variance > s.large_discrepancy_threshold:
            return (
                f"Large discrepancy detected for {income_year}. Please verify documents are "
                "for the same employer and time period. Consider requesting additional "
                "documentation."
            )

        if has_periodic and not has_annual:
            quarters = self._quarters(group)
            if len(quarters) < 4:
                return (
                    f"Only partial year data available for {income_year} "
                    f"({len(quarters)} quarter(s)). Annualized figures are estimates. "
                    "A W-2 would provide the definitive annual total."
                )

        if has_w2 and has_paystub:
            return (
                f"W-2 for {income_year} shows a different amount than annualized pay stubs. "
                "This may reflect raises, bonuses, or variable hours during the year. "
                "The W-2 is the official annual total."
            )

        if not has_paystub and not has_bank:
            return (
                f"Only annual documents available for {income_year}. Request recent pay "
                "stubs or bank statements for more accurate verification."
            )

        if has_paystub and has_bank:
            paystub = next(i for i in group if i.document_type == DocumentType.PAYSTUB)
            bank = next(i for i in group if i.document_type == DocumentType.BANK_STATEMENT)
            paystub_net = paystub.annualized_net or (
                paystub.annualized_gross * s.assumed_paystub_net_ratio
            )
            bank_net = bank.annualized_net or bank.annualized_gross
            if relative_difference(paystub_net, bank_net) < s.variance_threshold:
                return (
                    "Gross and net amounts align when accounting for deductions. "
                    "Confirm the deduction rate on a recent pay stub."
                )

        if has_paystub and not has_w2:
            return (
                f"Variance in {income_year} may be due to raises, bonuses, or variable hours. "
                "A W-2 would provide the definitive annual total."
            )

        if has_bank and not has_paystub:
            return (
                "Bank deposits show net income only. Pay stubs would clarify gross income "
                "and deductions."
            )

        return (
            "Review documents to confirm amounts. Minor variance may be due to rounding "
            "or timing differences."
        )

    def _build_discrepancy(
        self, group: list[NormalizedIncome], income_year: int
    ) -> Discrepancy:
        stats = calculate_variance([i.annualized_gross for i in group if i.annualized_gross > 0])
        return Discrepancy(
            max_variance=stats.max_variance,
            conflicting_documents=tuple(dict.fromkeys(i.document_id for i in group)),
            suggested_resolution=self.suggest_resolution(group, stats.max_variance, income_year),
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def reconcile_employer_year_group(
        self,
        case_id: str,
        group: list[NormalizedIncome],
        income_year: int,
        group_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReconciledIncomeSource:
        """
        Reconcile all incomes for one employer in one year.

        Args:
            case_id: Case the incomes belong to
            group: Normalized incomes for one matched employer and year
            income_year: The year being reconciled
            group_key: Employer group key from the matcher, used for the
                deterministic id and to collapse years in the summary
            now: Timestamp for created_at/updated_at (default: current UTC time)

        Returns:
            The reconciled source, with evidence and, when review is needed,
            a discrepancy
        """
        now = now or datetime.now(timezone.utc)
        notes: list[str] = []
        annual_docs = [i for i in group if i.is_annual_document]
        periodic_docs = [i for i in group if not i.is_annual_document]

        if annual_docs:
            determination = self._determine_with_annual(annual_docs, periodic_docs, notes)
        elif periodic_docs:
            determination = self._determine_periodic_only(periodic_docs, notes)
        else:
            raise ValueError("Cannot reconcile an empty employer-year group")

        discrepancy = None
        if determination.status.requires_review:
            discrepancy = self._build_discrepancy(group, income_year)

        primary = self._by_priority(group)[0]
        income_type = (
            IncomeType.SELF_EMPLOYMENT
            if primary.document_type == DocumentType.FORM_1099
            else IncomeType.EMPLOYMENT
        )
        employer_name = get_best_employer_name(group, self.settings.name_priority)
        employer_ein = get_employer_ein(group)
        if group_key is None:
            ein_digits = normalize_ein(employer_ein) if employer_ein else ""
            group_key = f"ein:{ein_digits}" if ein_digits else f"name:{primary.employer_normalized}"

        source = ReconciledIncomeSource(
            id=str(uuid.uuid5(SOURCE_ID_NAMESPACE, f"{case_id}|{group_key}|{income_year}")),
            case_id=case_id,
            employer_name=employer_name,
            employer_ein=employer_ein,
            employer_group_key=group_key,
            income_type=income_type,
            income_year=income_year,
            verified_annual_gross=determination.annual_gross,
            verified_monthly_gross=monthly_from_annual(determination.annual_gross),
            verified_annual_net=determination.annual_net,
            verified_monthly_net=(
                monthly_from_annual(determination.annual_net) if determination.annual_net else None
            ),
            determination_method=determination.method,
            evidence=self._build_evidence(group, income_year),
            confidence=min(determination.confidence, 1.0),
            status=determination.status,
            discrepancy=discrepancy,
            notes=tuple(notes),
            created_at=now,
            updated_at=now,
        )

        logger.info(
            "employer_year_reconciled",
            case_id=case_id,
            employer=employer_name,
            income_year=income_year,
            documents=len(group),
            status=source.status.value,
            method=source.determination_method.value,
            verified_annual_gross=str(source.verified_annual_gross),
            confidence=round(source.confidence, 4),
        )
        return source

    def calculate_summary(
        self,
        case_id: str,
        sources: Iterable[ReconciledIncomeSource],
        now: Optional[datetime] = None,
    ) -> CaseIncomeSummary:
        """
        Aggregate reconciled sources into case totals.

        Under the default policy only the most recent year per employer
        counts, so an employer with 2023 and 2024 income contributes its
        2024 figure once. Every source still appears in ``sources`` and in
        the review list.
        """
        sources = tuple(sources)
        now = now or datetime.now(timezone.utc)
        s = self.settings

        by_employer: dict[str, list[ReconciledIncomeSource]] = {}
        for source in sources:
            by_employer.setdefault(source.employer_key, []).append(source)

        total_gross = ZERO
        total_net = ZERO
        for employer_sources in by_employer.values():
            # Stable sort keeps the first-seen source on a year tie.
            ranked = sorted(employer_sources, key=lambda src: -src.income_year)
            if s.summary_policy == SummaryPolicy.AVERAGE_RECENT_YEARS:
                recent_years = sorted({src.income_year for src in ranked}, reverse=True)
                recent_years = recent_years[: s.summary_years]
                counted = [
                    next(src for src in ranked if src.income_year == year)
                    for year in recent_years
                ]
            else:
                counted = ranked[:1]

            total_gross += sum((src.verified_annual_gross for src in counted), ZERO) / len(counted)
            total_net += sum((src.verified_annual_net or ZERO for src in counted), ZERO) / len(
                counted
            )

        needing_review = tuple(src.id for src in sources if src.status.requires_review)
        total_monthly_gross = monthly_from_annual(total_gross)

        return CaseIncomeSummary(
            case_id=case_id,
            sources=sources,
            total_annual_gross=total_gross,
            total_monthly_gross=total_monthly_gross,
            total_monthly_net=monthly_from_annual(total_net) if total_net > 0 else None,
            all_sources_reconciled=not needing_review,
            sources_needing_review=needing_review,
            last_calculated_at=now,
        )

    def reconcile(
        self,
        case_id: str,
        normalized_incomes: Iterable[NormalizedIncome],
        now: Optional[datetime] = None,
    ) -> ReconciliationResult:
        """
        Reconcile all normalized incomes for a case.

        Groups by employer then year, reconciles each group independently,
        sorts sources by year (newest first) then employer name, and
        aggregates the summary.

        Args:
            case_id: Case identifier
            normalized_incomes: Output of the normalizer for this case
            now: Timestamp applied to every output record

        Returns:
            ReconciliationResult with sources and summary
        """
        now = now or datetime.now(timezone.utc)
        incomes = list(normalized_incomes)
        if not incomes:
            logger.info("reconciliation_complete", case_id=case_id, sources=0)
            return ReconciliationResult(
                sources=(),
                summary=CaseIncomeSummary(case_id=case_id, last_calculated_at=now),
            )

        groups = group_by_employer_and_year(incomes, config=self.config.matching)
        sources = [
            self.reconcile_employer_year_group(case_id, group, year, employer_key, now)
            for employer_key, years in groups.items()
            for year, group in years.items()
        ]
        sources.sort(key=lambda src: (-src.income_year, src.employer_name.lower(), src.employer_name))

        summary = self.calculate_summary(case_id, sources, now)
        logger.info(
            "reconciliation_complete",
            case_id=case_id,
            incomes=len(incomes),
            sources=len(sources),
            current_monthly_income=str(summary.current_monthly_income),
            all_sources_reconciled=summary.all_sources_reconciled,
        )
        return ReconciliationResult(sources=tuple(sources), summary=summary)


# =============================================================================
# MODULE-LEVEL CONVENIENCE
# =============================================================================


def reconcile_income(
    case_id: str,
    normalized_incomes: Iterable[NormalizedIncome],
    config: Optional[IncomeConfig] = None,
    now: Optional[datetime] = None,
) -> ReconciliationResult:
    """Reconcile normalized incomes for a case with the given settings."""
    return IncomeReconciler(config).reconcile(case_id, normalized_incomes, now)


reconcile = reconcile_income


def calculate_summary(
    case_id: str,
    sources: Iterable[ReconciledIncomeSource],
    config: Optional[IncomeConfig] = None,
    now: Optional[datetime] = None,
) -> CaseIncomeSummary:
    """Re-aggregate sources, e.g. after a manual override."""
    return IncomeReconciler(config).calculate_summary(case_id, sources, now)


def reconcile_extractions(
    case_id: str,
    extractions: Iterable[RawIncomeExtraction],
    config: Optional[IncomeConfig] = None,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> ReconciliationResult:
    """Run the whole pipeline: normalize, group, reconcile, summarize."""
    config = config or IncomeConfig()
    normalized = normalize_all(extractions, config.normalization, today)
    return IncomeReconciler(config).reconcile(case_id, normalized, now)


def apply_manual_override(
    source: ReconciledIncomeSource,
    annual_gross: Decimal,
    verified_by: str,
    annual_net: Optional[Decimal] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReconciledIncomeSource:
    """
    Replace a source's figure with one entered by a reviewer.

    The result is a new source with status ``manual`` and method
    ``manual_override``; the previous figure is kept in the notes.
    """
    now = now or datetime.now(timezone.utc)
    annual_gross = Decimal(str(annual_gross))
    annual_net = Decimal(str(annual_net)) if annual_net is not None else None

    notes = list(source.notes)
    notes.append(
        f"Manual override by {verified_by}: {source.verified_annual_gross} -> {annual_gross} "
        f"(was {source.status.value})"
    )
    if note:
        notes.append(note)

    overridden = source.model_copy(
        update={
            "verified_annual_gross": annual_gross,
            "verified_monthly_gross": monthly_from_annual(annual_gross),
            "verified_annual_net": annual_net,
            "verified_monthly_net": monthly_from_annual(annual_net) if annual_net else None,
            "determination_method": DeterminationMethod.MANUAL_OVERRIDE,
            "status": ReconciliationStatus.MANUAL,
            "confidence": 1.0,
            "discrepancy": None,
            "notes": tuple(notes),
            "updated_at": now,
            "verified_at": now,
            "verified_by": verified_by,
        }
    )
    logger.info(
        "manual_override_applied",
        source_id=source.id,
        case_id=source.case_id,
        verified_by=verified_by,
        previous_status=source.status.value,
        verified_annual_gross=str(annual_gross),
    )
    return overridden
