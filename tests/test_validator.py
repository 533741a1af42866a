"""
Tests for the compliance reporter.

These tests verify readiness verdicts, certification of single invoices
and batches, and the text rendering used by the CLI.
"""

import pytest

from einvoice_qc.config import Obligation, Severity
from einvoice_qc.profiles import PRESENCE_FIELDS, UNIVERSAL_FIELDS
from einvoice_qc.schemas import (
    BatchSummary,
    CanonicalInvoice,
    CheckResult,
    DocumentTotals,
    FormatFieldConfig,
    ValidationError,
)
from einvoice_qc.validator import (
    certify_invoice,
    create_batch_report,
    format_batch_summary_text,
    format_report_text,
    get_top_errors,
    resolve_output_format,
    summarize,
    validate_batch,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def not_ready_invoice(xrechnung_invoice, gross_line_item) -> CanonicalInvoice:
    """The XRechnung invoice with a GROSS line and no IBAN."""
    invoice = xrechnung_invoice.model_copy(deep=True)
    invoice.line_items.append(gross_line_item)
    invoice.payment.iban = None
    return invoice


def make_error(rule_id: str, severity: Severity) -> ValidationError:
    return ValidationError(rule_id=rule_id, severity=severity, message=rule_id)


# ============================================================================
# Summary Tests
# ============================================================================

class TestSummarize:
    """Tests for summarize."""

    def test_no_errors_is_ready(self):
        summary = summarize([])
        assert summary.is_ready is True
        assert summary.errors_total_count == 0

    def test_warnings_do_not_block(self):
        summary = summarize([make_error("missing_field:buyer_reference", Severity.WARNING)])
        assert summary.is_ready is True
        assert summary.warnings_total_count == 1

    def test_error_blocks(self):
        errors = [
            make_error("BR-CO-15", Severity.ERROR),
            make_error("SEMANTIC-LINE-TOTAL-MISMATCH", Severity.WARNING),
        ]
        summary = summarize(errors)
        assert summary.is_ready is False
        assert summary.errors_total_count == 1
        assert summary.errors_passed_count == 0
        assert summary.warnings_total_count == 1

    def test_counts_with_checks(self):
        failed = make_error("BR-CO-10", Severity.ERROR)
        checks = [
            CheckResult(rule_id="BR-CO-10", severity=Severity.ERROR, passed=False, errors=[failed]),
            CheckResult(rule_id="BR-CO-15", severity=Severity.ERROR, passed=True),
            CheckResult(rule_id="BR-CO-14", severity=Severity.ERROR, passed=True),
            CheckResult(rule_id="missing_field:buyer_reference", severity=Severity.WARNING, passed=True),
        ]
        summary = summarize([failed], checks)
        assert summary.errors_passed_count == 2
        assert summary.errors_total_count == 3
        assert summary.warnings_passed_count == 1
        assert summary.warnings_total_count == 1
        assert summary.is_ready is False


# ============================================================================
# Certification Tests
# ============================================================================

class TestCertifyInvoice:
    """Tests for certify_invoice."""

    def test_ready_invoice(self, xrechnung_invoice):
        report = certify_invoice(xrechnung_invoice, "xrechnung-cii")
        assert report.summary.is_ready is True
        assert report.errors == []
        assert report.invoice_id == "RE-2024-0042"
        assert report.output_format == "xrechnung-cii"
        assert report.summary.errors_passed_count == report.summary.errors_total_count
        assert report.summary.errors_total_count > 0

    def test_not_ready_invoice(self, not_ready_invoice):
        report = certify_invoice(not_ready_invoice, "xrechnung-cii")
        assert report.summary.is_ready is False
        ids = [e.rule_id for e in report.errors]
        assert "SEMANTIC-NET-GROSS" in ids
        assert "missing_field:seller_iban" in ids
        assert report.summary.errors_passed_count < report.summary.errors_total_count

    def test_totals_recomputed(self, xrechnung_invoice):
        xrechnung_invoice.totals = DocumentTotals(subtotal=1000.00, tax_amount=190.00, total_amount=1190.00)
        report = certify_invoice(xrechnung_invoice, "xrechnung-cii")
        assert report.summary.is_ready is True
        assert report.totals.subtotal == 900.0
        assert report.totals.tax_amount == 171.0
        assert report.totals.total_amount == 1071.0
        assert report.totals.amount_due == 1071.0

    def test_prepaid_amount_reduces_amount_due(self, xrechnung_invoice):
        xrechnung_invoice.payment.prepaid_amount = "1.000,00"
        report = certify_invoice(xrechnung_invoice, "xrechnung-cii")
        assert report.summary.is_ready is True
        assert report.totals.amount_due == 71.0

    def test_stored_totals_audited_without_recompute(self, xrechnung_invoice):
        xrechnung_invoice.totals = DocumentTotals(subtotal=1000.00, tax_amount=190.00, total_amount=1190.00)
        report = certify_invoice(xrechnung_invoice, "xrechnung-cii", recompute=False)
        ids = [e.rule_id for e in report.errors]
        assert "BR-CO-10" in ids
        assert "BR-CO-14" in ids
        assert report.totals.subtotal == 1000.0

    def test_tax_breakdown(self, xrechnung_invoice):
        report = certify_invoice(xrechnung_invoice, "xrechnung-cii")
        assert len(report.tax_breakdown) == 1
        assert report.tax_breakdown[0].taxable_amount == 900.0
        assert report.tax_breakdown[0].tax_amount == 171.0

    def test_readiness_is_format_scoped(self, xrechnung_invoice):
        xrechnung_invoice.payment.iban = None
        assert certify_invoice(xrechnung_invoice, "xrechnung-cii").summary.is_ready is False
        assert certify_invoice(xrechnung_invoice, "facturx-en16931").summary.is_ready is True

    def test_readiness_with_hidden_iban(self, xrechnung_invoice):
        xrechnung_invoice.payment.iban = None

        def profile(iban: Obligation) -> FormatFieldConfig:
            fields = {name: Obligation.OPTIONAL for name in PRESENCE_FIELDS}
            for name in UNIVERSAL_FIELDS:
                fields[name] = Obligation.REQUIRED
            fields["seller_iban"] = iban
            return FormatFieldConfig(format_id="bank", fields=fields)

        requiring = {"bank": profile(Obligation.REQUIRED)}
        hiding = {"bank": profile(Obligation.HIDDEN)}
        assert certify_invoice(xrechnung_invoice, "bank", registry=requiring).summary.is_ready is False
        assert certify_invoice(xrechnung_invoice, "bank", registry=hiding).summary.is_ready is True


class TestResolveOutputFormat:
    """Tests for picking the format to certify against."""

    def test_explicit_format_wins(self, xrechnung_invoice):
        xrechnung_invoice.output_format = "peppol-bis"
        assert resolve_output_format(xrechnung_invoice, "KSEF") == "ksef"

    def test_invoice_format_used(self, xrechnung_invoice):
        xrechnung_invoice.output_format = "peppol-bis"
        assert resolve_output_format(xrechnung_invoice) == "peppol-bis"

    def test_detected_from_country(self, xrechnung_invoice):
        xrechnung_invoice.seller.country_code = "IT"
        assert resolve_output_format(xrechnung_invoice) == "fatturapa"
        assert certify_invoice(xrechnung_invoice).output_format == "fatturapa"


# ============================================================================
# Batch Tests
# ============================================================================

class TestValidateBatch:
    """Tests for batch certification."""

    def test_mixed_batch(self, xrechnung_invoice, not_ready_invoice):
        reports, summary = validate_batch([xrechnung_invoice, not_ready_invoice], "xrechnung-cii")
        assert len(reports) == 2
        assert summary.total_invoices == 2
        assert summary.ready_invoices == 1
        assert summary.not_ready_invoices == 1
        assert summary.error_counts["SEMANTIC-NET-GROSS"] == 1
        assert summary.error_counts["missing_field:seller_iban"] == 1

    def test_warning_counts(self, xrechnung_invoice):
        xrechnung_invoice.buyer_reference = None
        _, summary = validate_batch([xrechnung_invoice, xrechnung_invoice], "xrechnung-cii")
        assert summary.ready_invoices == 2
        assert summary.warning_counts == {"missing_field:buyer_reference": 2}
        assert summary.error_counts == {}

    def test_empty_batch(self):
        reports, summary = validate_batch([])
        assert reports == []
        assert summary.total_invoices == 0
        assert summary.ready_invoices == 0
        assert summary.not_ready_invoices == 0

    def test_create_batch_report(self, xrechnung_invoice):
        batch = create_batch_report([xrechnung_invoice], "xrechnung-cii")
        assert batch.summary.total_invoices == 1
        assert batch.per_invoice_results[0].summary.is_ready is True

    def test_top_errors(self):
        summary = BatchSummary(
            total_invoices=3,
            ready_invoices=0,
            not_ready_invoices=3,
            error_counts={"BR-CO-10": 1, "SEMANTIC-NET-GROSS": 3, "missing_field:seller_iban": 2},
        )
        assert get_top_errors(summary, n=2) == [
            ("SEMANTIC-NET-GROSS", 3),
            ("missing_field:seller_iban", 2),
        ]


# ============================================================================
# Text Formatting Tests
# ============================================================================

class TestFormatText:
    """Tests for CLI text rendering."""

    def test_report_ready(self, xrechnung_invoice):
        text = format_report_text(certify_invoice(xrechnung_invoice, "xrechnung-cii"))
        assert "RE-2024-0042" in text
        assert "xrechnung-cii" in text
        assert "1071.00" in text
        assert "Amount due:" in text
        assert "READY" in text
        assert "NOT READY" not in text

    def test_report_not_ready(self, not_ready_invoice):
        text = format_report_text(certify_invoice(not_ready_invoice, "xrechnung-cii"))
        assert "NOT READY" in text
        assert "[SEMANTIC-NET-GROSS]" in text
        assert "Errors passed:" in text

    def test_report_without_amount_due(self, xrechnung_invoice):
        text = format_report_text(certify_invoice(xrechnung_invoice, "xrechnung-cii", recompute=False))
        assert "Amount due:      -" in text

    def test_batch_summary(self):
        summary = BatchSummary(
            total_invoices=10,
            ready_invoices=7,
            not_ready_invoices=3,
            error_counts={"missing_field:seller_iban": 2, "BR-CO-15": 1},
            warning_counts={"missing_field:buyer_reference": 4},
        )
        text = format_batch_summary_text(summary)
        assert "Total invoices processed: 10" in text
        assert "Ready invoices:" in text
        assert "Not ready invoices:" in text
        assert "missing_field:seller_iban: 2" in text
        assert "missing_field:buyer_reference: 4" in text
