"""
Tests for the command-line interface.
"""

import copy
import json

import pytest
from typer.testing import CliRunner

from einvoice_qc.cli import app


runner = CliRunner()


@pytest.fixture
def invoice_file(tmp_path, invoice_data):
    path = tmp_path / "invoice.json"
    path.write_text(json.dumps(invoice_data), encoding="utf-8")
    return path


@pytest.fixture
def batch_file(tmp_path, invoice_data):
    gross = copy.deepcopy(invoice_data)
    gross["invoiceNumber"] = "RE-2024-0043"
    gross["lineItems"] = [
        {"description": "Widget", "quantity": 1, "unitPrice": 19.90, "totalPrice": 23.68, "taxRate": 19}
    ]
    gross["allowanceCharges"] = []
    path = tmp_path / "batch.json"
    path.write_text(json.dumps([invoice_data, gross]), encoding="utf-8")
    return path


class TestValidateCommand:
    """Tests for the validate command."""

    def test_single_invoice(self, invoice_file, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(app, [
            "validate", "--input", str(invoice_file), "--format", "xrechnung-cii", "--report", str(report),
        ])
        assert result.exit_code == 0
        assert "READY" in result.output
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"]["total_invoices"] == 1
        assert data["summary"]["ready_invoices"] == 1
        assert data["per_invoice_results"][0]["output_format"] == "xrechnung-cii"

    def test_batch_report(self, batch_file, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(app, ["validate", "-i", str(batch_file), "-f", "xrechnung-cii", "-r", str(report)])
        assert result.exit_code == 0
        assert "NOT READY" in result.output
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"]["not_ready_invoices"] == 1
        assert data["summary"]["error_counts"] == {"SEMANTIC-NET-GROSS": 1}

    def test_fail_on_not_ready(self, batch_file, tmp_path):
        result = runner.invoke(app, [
            "validate", "-i", str(batch_file), "-f", "xrechnung-cii",
            "-r", str(tmp_path / "report.json"), "--fail-on-not-ready",
        ])
        assert result.exit_code == 1

    def test_no_recompute(self, tmp_path, invoice_data):
        invoice_data["totals"]["totalAmount"] = 1000.00
        path = tmp_path / "invoice.json"
        path.write_text(json.dumps(invoice_data), encoding="utf-8")
        report = tmp_path / "report.json"
        result = runner.invoke(app, [
            "validate", "-i", str(path), "-f", "xrechnung-cii", "-r", str(report), "--no-recompute",
        ])
        assert result.exit_code == 0
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"]["error_counts"] == {"BR-CO-15": 1}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(app, ["validate", "-i", str(path), "-r", str(tmp_path / "report.json")])
        assert result.exit_code == 1

    def test_missing_input_file(self, tmp_path):
        result = runner.invoke(app, ["validate", "-i", str(tmp_path / "missing.json")])
        assert result.exit_code != 0


class TestInfoCommands:
    """Tests for totals, formats, fields and version."""

    def test_totals(self, invoice_file):
        result = runner.invoke(app, ["totals", "--input", str(invoice_file)])
        assert result.exit_code == 0
        assert "RE-2024-0042" in result.output
        assert "900.00" in result.output
        assert "171.00" in result.output
        assert "1071.00" in result.output
        assert "Amount due" in result.output

    def test_formats(self):
        result = runner.invoke(app, ["formats"])
        assert result.exit_code == 0
        assert "xrechnung-cii" in result.output
        assert "KSeF FA(3)" in result.output

    def test_fields(self):
        result = runner.invoke(app, ["fields", "--format", "ksef"])
        assert result.exit_code == 0
        assert "HIDDEN" in result.output
        assert "notes" in result.output
        assert "NIP" in result.output

    def test_fields_unknown_format(self):
        result = runner.invoke(app, ["fields", "--format", "zugferd-extended"])
        assert result.exit_code == 1

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
