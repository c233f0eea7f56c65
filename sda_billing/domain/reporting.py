"""Run summaries for automation logs and admin notifications"""

from datetime import datetime
from decimal import Decimal
from typing import List

from sda_billing.domain.models import DraftTransaction, GenerationResult, GenerationSummary
from sda_billing.domain.rates import to_money

MAX_LISTED_ERRORS = 10


def summarize_transactions(transactions: List[DraftTransaction]) -> GenerationSummary:
    """Total, average and per-frequency counts"""
    summary = GenerationSummary()
    for txn in transactions:
        summary.total_amount += txn.amount
        key = txn.frequency or "unknown"
        summary.frequency_breakdown[key] = summary.frequency_breakdown.get(key, 0) + 1
    if transactions:
        summary.average_amount = to_money(summary.total_amount / len(transactions))
    return summary


def run_status(result: GenerationResult) -> str:
    """
    success: no failures
    partial: some transactions created, some contracts failed
    failed:  batch-level failure, or nothing created while something failed
    """
    if not result.success:
        return "failed"
    if result.failed_transactions == 0:
        return "success"
    if result.successful_transactions > 0:
        return "partial"
    return "failed"


def render_run_summary(result: GenerationResult, executed_at: datetime, organization_name: str) -> str:
    """Plain-text summary stored on the automation log and sent to admins"""
    lines = [
        f"Automated Billing Run - {organization_name}",
        executed_at.strftime("%A %d %B %Y %H:%M"),
        "",
        "SUMMARY",
        f"- Contracts Processed: {result.processed_contracts}",
        f"- Successful Transactions: {result.successful_transactions}",
        f"- Failed Transactions: {result.failed_transactions}",
        f"- Skipped Contracts: {result.skipped_contracts}",
        f"- Total Amount: ${result.summary.total_amount.quantize(Decimal('0.01'))}",
        "",
    ]

    if result.summary.frequency_breakdown:
        lines.append("FREQUENCY BREAKDOWN")
        for frequency, count in result.summary.frequency_breakdown.items():
            plural = "" if count == 1 else "s"
            lines.append(f"- {frequency}: {count} transaction{plural}")
        lines.append("")

    if result.errors:
        lines.append(f"ERRORS ({len(result.errors)})")
        for index, error in enumerate(result.errors[:MAX_LISTED_ERRORS], start=1):
            lines.append(f"{index}. Contract {error.contract_id}: {error.error}")
        if len(result.errors) > MAX_LISTED_ERRORS:
            lines.append(f"... and {len(result.errors) - MAX_LISTED_ERRORS} more errors")
    else:
        lines.append("No errors encountered")

    return "\n".join(lines)
