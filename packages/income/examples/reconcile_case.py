#!/usr/bin/env python3
"""
Reconcile Income Extractions for a Case

Reads a JSON list of income extractions (one object per document, as
produced by the extraction step), normalizes them, groups them by
employer and year, reconciles each group and prints the verified
income with its review items.

Usage:
    python examples/reconcile_case.py extractions.json --case-id case_123
    python examples/reconcile_case.py extractions.json --case-id case_123 --json
    python examples/reconcile_case.py --sample
"""

import argparse
import json
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vindicate_income import (
    IncomeConfig,
    parse_extractions,
    reconcile_extractions,
)
from vindicate_income.exceptions import VindicateError
from vindicate_income.models import ReconciliationResult


SAMPLE_EXTRACTIONS = [
    {
        "id": "ext_1",
        "document_id": "doc_w2_2024",
        "document_type": "W-2",
        "raw_amount": "48000.00",
        "frequency": "annual",
        "amount_type": "gross",
        "payer_name": "Acme Corporation",
        "payer_ein": "12-3456789",
        "tax_year": 2024,
        "extraction_confidence": 0.92,
    },
    {
        "id": "ext_2",
        "document_id": "doc_stub_0315",
        "document_type": "paystub",
        "document_date": "2024-03-15",
        "raw_amount": "1850.00",
        "frequency": "bi-weekly",
        "amount_type": "gross",
        "payer_name": "ACME CORP",
        "period_start": "2024-03-01",
        "period_end": "2024-03-14",
        "ytd_gross": "11100.00",
        "ytd_net": "8300.00",
        "extraction_confidence": 0.88,
    },
    {
        "id": "ext_3",
        "document_id": "doc_bank_0331",
        "document_type": "bank_statement",
        "document_date": "2024-03-31",
        "raw_amount": "1380.00",
        "frequency": "biweekly",
        "amount_type": "net",
        "payer_name": "ACME CORP PAYROLL",
        "is_payroll_deposit": True,
        "extraction_confidence": 0.75,
    },
    {
        "id": "ext_4",
        "document_id": "doc_1099_2024",
        "document_type": "1099-NEC",
        "raw_amount": "6000.00",
        "frequency": "annual",
        "payer_name": "Springfield Tutoring LLC",
        "tax_year": 2024,
        "extraction_confidence": 0.8,
    },
]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and date types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


def money(value) -> str:
    if value is None:
        return "-"
    return f"${value:,.2f}"


def format_report(result: ReconciliationResult) -> str:
    """Render a reconciliation result as a plain-text report."""
    summary = result.summary
    lines = [
        "=" * 70,
        f"INCOME RECONCILIATION - {summary.case_id}",
        "=" * 70,
    ]

    for source in result.sources:
        lines.append("")
        lines.append(f"{source.employer_name} ({source.income_year}) [{source.income_type.value}]")
        lines.append("-" * 70)
        lines.append(f"  Status:          {source.status.value}")
        lines.append(f"  Method:          {source.determination_method.value}")
        lines.append(f"  Confidence:      {source.confidence:.0%}")
        lines.append(f"  Annual gross:    {money(source.verified_annual_gross)}")
        lines.append(f"  Monthly gross:   {money(source.verified_monthly_gross)}")
        lines.append(f"  Monthly net:     {money(source.verified_monthly_net)}")
        lines.append("  Evidence:")
        for item in source.evidence:
            lines.append(
                f"    - {item.document_name}: {money(item.extracted_amount)} "
                f"{item.extracted_frequency.value} -> {money(item.annualized_amount)}/yr "
                f"({item.confidence:.0%})"
            )
        for note in source.notes:
            lines.append(f"  Note: {note}")
        if source.discrepancy:
            lines.append(
                f"  REVIEW ({source.discrepancy.max_variance:.1%} variance): "
                f"{source.discrepancy.suggested_resolution}"
            )

    lines.append("")
    lines.append("=" * 70)
    lines.append(f"Total annual gross:       {money(summary.total_annual_gross)}")
    lines.append(f"Current monthly income:   {money(summary.current_monthly_income)}")
    lines.append(f"Total monthly net:        {money(summary.total_monthly_net)}")
    if summary.all_sources_reconciled:
        lines.append("All sources reconciled.")
    else:
        lines.append(f"Sources needing review:   {len(summary.sources_needing_review)}")
    return "\n".join(lines)


def main():
    """Main entry point for case reconciliation."""
    parser = argparse.ArgumentParser(
        description="Reconcile income extractions into verified income for a case",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "extractions",
        type=str,
        nargs="?",
        help="Path to a JSON file containing a list of extractions"
    )
    parser.add_argument(
        "--case-id", "-c",
        type=str,
        default="sample_case",
        help="Case identifier (default: sample_case)"
    )
    parser.add_argument(
        "--sample",
        action="store_true",
        help="Reconcile a built-in sample case instead of a file"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON"
    )
    args = parser.parse_args()

    if args.sample:
        records = SAMPLE_EXTRACTIONS
    elif args.extractions:
        path = Path(args.extractions)
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            sys.exit(1)
        records = json.loads(path.read_text())
    else:
        parser.error("provide an extractions file or --sample")

    try:
        extractions = parse_extractions(records)
        result = reconcile_extractions(args.case_id, extractions, IncomeConfig())
    except VindicateError as e:
        print(f"Error: {e}", file=sys.stderr)
        for key, value in e.details.items():
            print(f"  {key}: {value}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.model_dump(mode="python"), cls=DecimalEncoder, indent=2))
    else:
        print(format_report(result))


if __name__ == "__main__":
    main()
