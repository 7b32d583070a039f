"""Income reconciliation data models.

This package provides:
- Raw and normalized per-document income (income.py)
- Reconciled sources and case summaries (reconciled.py)
"""

from vindicate_income.models.income import (
    ANNUAL_DOCUMENT_TYPES,
    AmountType,
    DocumentType,
    NormalizationMethod,
    NormalizedIncome,
    PayFrequency,
    RawIncomeExtraction,
)
from vindicate_income.models.reconciled import (
    CaseIncomeSummary,
    DeterminationMethod,
    Discrepancy,
    IncomeEvidence,
    IncomeType,
    ReconciledIncomeSource,
    ReconciliationResult,
    ReconciliationStatus,
)

__all__ = [
    # Enumerations
    "AmountType",
    "DeterminationMethod",
    "DocumentType",
    "IncomeType",
    "NormalizationMethod",
    "PayFrequency",
    "ReconciliationStatus",
    "ANNUAL_DOCUMENT_TYPES",
    # Per-document income
    "RawIncomeExtraction",
    "NormalizedIncome",
    # Reconciliation output
    "IncomeEvidence",
    "Discrepancy",
    "ReconciledIncomeSource",
    "CaseIncomeSummary",
    "ReconciliationResult",
]
