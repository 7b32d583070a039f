"""Shared fixtures for income reconciliation tests."""

import os
from datetime import date, datetime, timezone
from decimal import Decimal
from itertools import count
from typing import Callable

import pytest

from vindicate_income.models import NormalizedIncome, RawIncomeExtraction
from vindicate_income.normalization import create_normalized_income

_ids = count(1)


def build_extraction(**overrides) -> RawIncomeExtraction:
    """Build a RawIncomeExtraction for a biweekly gross pay stub, with overrides."""
    n = next(_ids)
    fields = {
        "id": f"ext_{n}",
        "document_id": f"doc_{n}",
        "document_type": "paystub",
        "document_date": date(2024, 3, 15),
        "raw_amount": Decimal("2000"),
        "frequency": "biweekly",
        "amount_type": "gross",
        "payer_name": "Acme Corporation",
        "extraction_confidence": 0.9,
    }
    fields.update(overrides)
    return RawIncomeExtraction(**fields)


def build_income(**overrides) -> NormalizedIncome:
    """Build an extraction and normalize it."""
    extraction = build_extraction(**overrides)
    return create_normalized_income(extraction, today=date(2024, 12, 31))


@pytest.fixture
def make_extraction() -> Callable[..., RawIncomeExtraction]:
    """Factory for RawIncomeExtraction values."""
    return build_extraction


@pytest.fixture
def make_income() -> Callable[..., NormalizedIncome]:
    """Factory for NormalizedIncome values built through the normalizer."""
    return build_income


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed timestamp so reconciliation output is fully reproducible."""
    return datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_income_env(monkeypatch):
    """Keep deployment overrides from leaking into tests."""
    for key in list(os.environ):
        if key.startswith("VINDICATE_INCOME_"):
            monkeypatch.delenv(key, raising=False)
