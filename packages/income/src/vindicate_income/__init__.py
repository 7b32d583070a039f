"""Vindicate Income - Multi-document income reconciliation for the means test."""

__version__ = "0.1.0"

from .config import IncomeConfig, MatchingConfig, NormalizationConfig, ReconciliationConfig
from .employer_matching import employer_similarity, group_by_employer_and_year
from .normalization import normalize, normalize_all, parse_extractions
from .reconciliation import (
    IncomeReconciler,
    apply_manual_override,
    calculate_summary,
    reconcile,
    reconcile_extractions,
)

__all__ = [
    "IncomeConfig",
    "MatchingConfig",
    "NormalizationConfig",
    "ReconciliationConfig",
    "IncomeReconciler",
    "apply_manual_override",
    "calculate_summary",
    "employer_similarity",
    "group_by_employer_and_year",
    "normalize",
    "normalize_all",
    "parse_extractions",
    "reconcile",
    "reconcile_extractions",
]
