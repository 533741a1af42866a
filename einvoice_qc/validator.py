"""
Compliance reporting for e-invoices.

This module turns business rule outcomes into verdicts: per-invoice pass/fail
counts partitioned by severity, the readiness flag that gates document
generation, and aggregated summaries for batches of invoices.
"""

from collections import Counter
from typing import Mapping, Optional

from .config import Severity, logger
from .monetary import format_money, group_by_tax_rate, with_recomputed_totals
from .profiles import FormatId, detect_format_from_data, format_key
from .rules import ValidationRule, evaluate_checks
from .schemas import (
    BatchReport,
    BatchSummary,
    CanonicalInvoice,
    CheckResult,
    ComplianceReport,
    ComplianceSummary,
    FormatFieldConfig,
    ValidationError,
)


def summarize(
    errors: list[ValidationError],
    checks: Optional[list[CheckResult]] = None,
) -> ComplianceSummary:
    """
    Aggregate rule outcomes into pass/fail counts per severity.

    ``is_ready`` is true iff no error-severity rule failed; warnings never
    block readiness. This is a pure aggregation with no knowledge of rule
    semantics.

    Args:
        errors: Failures reported by the evaluator
        checks: All executed checks, passed and failed. Without them only
            failures can be counted, so the totals equal the failure counts.

    Returns:
        ComplianceSummary for this evaluation run
    """
    is_ready = not any(error.severity == Severity.ERROR for error in errors)

    if checks is None:
        error_failures = sum(1 for e in errors if e.severity == Severity.ERROR)
        warning_failures = len(errors) - error_failures
        return ComplianceSummary(
            errors_passed_count=0,
            errors_total_count=error_failures,
            warnings_passed_count=0,
            warnings_total_count=warning_failures,
            is_ready=is_ready,
        )

    error_checks = [c for c in checks if c.severity == Severity.ERROR]
    warning_checks = [c for c in checks if c.severity == Severity.WARNING]
    return ComplianceSummary(
        errors_passed_count=sum(1 for c in error_checks if c.passed),
        errors_total_count=len(error_checks),
        warnings_passed_count=sum(1 for c in warning_checks if c.passed),
        warnings_total_count=len(warning_checks),
        is_ready=is_ready,
    )


def resolve_output_format(invoice: CanonicalInvoice, output_format: Optional[FormatId] = None) -> str:
    """
    Pick the format to certify against: the explicit argument, else the
    invoice's own output_format, else a suggestion from its country data.
    """
    if output_format:
        return format_key(output_format)
    if invoice.output_format:
        return format_key(invoice.output_format)
    detected = detect_format_from_data(
        seller_country_code=invoice.seller.country_code,
        buyer_country_code=invoice.buyer.country_code,
        seller_electronic_address=invoice.seller.electronic_address,
    )
    logger.info(f"No output format given for invoice {invoice.invoice_number}, using {detected}")
    return detected


def certify_invoice(
    invoice: CanonicalInvoice,
    output_format: Optional[FormatId] = None,
    recompute: bool = True,
    registry: Optional[Mapping[str, FormatFieldConfig]] = None,
    rules: Optional[list[ValidationRule]] = None,
) -> ComplianceReport:
    """
    Recompute totals, evaluate the rules and summarize the verdict.

    Args:
        invoice: The invoice to certify
        output_format: Format to certify against (see resolve_output_format)
        recompute: Replace the stored totals with recomputed ones first.
            Disable only to audit the totals exactly as extracted.
        registry: Optional field configuration table
        rules: Optional list of rules to apply

    Returns:
        ComplianceReport with the totals used, tax breakdown, errors and summary
    """
    key = resolve_output_format(invoice, output_format)
    if recompute:
        invoice = with_recomputed_totals(invoice)

    checks = evaluate_checks(invoice, key, registry, rules)
    errors = [error for check in checks for error in check.errors]

    return ComplianceReport(
        invoice_id=invoice.invoice_number,
        output_format=key,
        totals=invoice.totals,
        tax_breakdown=group_by_tax_rate(invoice.line_items, invoice.allowance_charges),
        errors=errors,
        summary=summarize(errors, checks),
    )


def validate_batch(
    invoices: list[CanonicalInvoice],
    output_format: Optional[FormatId] = None,
    recompute: bool = True,
) -> tuple[list[ComplianceReport], BatchSummary]:
    """
    Certify a batch of invoices and produce an aggregated summary.

    Each invoice is evaluated independently; there is no batch-level state.

    Args:
        invoices: Invoices to certify
        output_format: Format for all invoices; None resolves per invoice
        recompute: Recompute totals before evaluating

    Returns:
        Tuple of (list of per-invoice reports, batch summary)
    """
    logger.info(f"Certifying batch of {len(invoices)} invoices")

    reports = [certify_invoice(invoice, output_format, recompute) for invoice in invoices]

    error_counts = Counter(
        e.rule_id for r in reports for e in r.errors if e.severity == Severity.ERROR
    )
    warning_counts = Counter(
        e.rule_id for r in reports for e in r.errors if e.severity == Severity.WARNING
    )
    ready = sum(1 for r in reports if r.summary.is_ready)

    summary = BatchSummary(
        total_invoices=len(reports),
        ready_invoices=ready,
        not_ready_invoices=len(reports) - ready,
        error_counts=dict(error_counts),
        warning_counts=dict(warning_counts),
    )

    logger.info(f"Certification complete: {ready} ready, {len(reports) - ready} not ready")

    return reports, summary


def create_batch_report(
    invoices: list[CanonicalInvoice],
    output_format: Optional[FormatId] = None,
    recompute: bool = True,
) -> BatchReport:
    """Certify a batch and wrap the results in a BatchReport."""
    reports, summary = validate_batch(invoices, output_format, recompute)
    return BatchReport(summary=summary, per_invoice_results=reports)


def get_top_errors(summary: BatchSummary, n: int = 5) -> list[tuple[str, int]]:
    """
    Get the top N most frequent failing error rules from a batch summary.

    Returns:
        List of (rule_id, count) tuples, sorted by count descending
    """
    sorted_errors = sorted(
        summary.error_counts.items(),
        key=lambda x: x[1],
        reverse=True
    )
    return sorted_errors[:n]


def format_report_text(report: ComplianceReport) -> str:
    """
    Format a ComplianceReport as human-readable text for CLI output.
    """
    s = report.summary
    lines = [
        "=" * 50,
        f"COMPLIANCE REPORT: {report.invoice_id or '<no invoice number>'}",
        "=" * 50,
        f"Output format:   {report.output_format}",
        f"Subtotal:        {report.totals.subtotal:.2f}",
        f"Tax amount:      {report.totals.tax_amount:.2f}",
        f"Total amount:    {report.totals.total_amount:.2f}",
        f"Amount due:      {'-' if report.totals.amount_due is None else format_money(report.totals.amount_due)}",
        "",
        f"Errors passed:   {s.errors_passed_count}/{s.errors_total_count}",
        f"Warnings passed: {s.warnings_passed_count}/{s.warnings_total_count}",
        f"Status:          {'READY' if s.is_ready else 'NOT READY'}",
        "",
    ]

    failures = [e for e in report.errors if e.severity == Severity.ERROR]
    warnings = [e for e in report.errors if e.severity == Severity.WARNING]

    if failures:
        lines.append("Errors:")
        lines.append("-" * 40)
        for error in failures:
            lines.append(f"  [{error.rule_id}] {error.message}")
        lines.append("")

    if warnings:
        lines.append("Warnings:")
        lines.append("-" * 40)
        for warning in warnings:
            lines.append(f"  [{warning.rule_id}] {warning.message}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)


def format_batch_summary_text(summary: BatchSummary) -> str:
    """
    Format a BatchSummary as human-readable text for CLI output.
    """
    lines = [
        "=" * 50,
        "CERTIFICATION SUMMARY",
        "=" * 50,
        f"Total invoices processed: {summary.total_invoices}",
        f"Ready invoices:           {summary.ready_invoices}",
        f"Not ready invoices:       {summary.not_ready_invoices}",
        "",
    ]

    if summary.error_counts:
        lines.append("Top Failing Rules:")
        lines.append("-" * 40)
        for rule_id, count in get_top_errors(summary):
            lines.append(f"  {rule_id}: {count}")
        lines.append("")

    if summary.warning_counts:
        lines.append("Warnings:")
        lines.append("-" * 40)
        for rule_id, count in sorted(summary.warning_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {rule_id}: {count}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
