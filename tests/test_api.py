"""
Tests for the REST API.
"""

import copy

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from einvoice_qc.api import app


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def gross_invoice_data(invoice_data) -> dict:
    data = copy.deepcopy(invoice_data)
    data["lineItems"] = [
        {"description": "Widget", "quantity": 1, "unitPrice": 19.90, "totalPrice": 23.68, "taxRate": 19}
    ]
    data["allowanceCharges"] = []
    return data


class TestSystemEndpoints:
    """Tests for health and rule listing."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok", "version": "0.1.0"}

    def test_rules(self, client):
        data = client.get("/rules").json()
        assert data["total_rules"] == 10
        codes = [rule["code"] for rule in data["rules_by_category"]["arithmetic"]]
        assert codes == ["BR-CO-10", "BR-CO-14", "BR-CO-15", "BR-CO-16"]


class TestFormatEndpoints:
    """Tests for format metadata and field configuration."""

    def test_list_formats(self, client):
        data = client.get("/formats").json()
        assert len(data) == 9
        assert {"xrechnung-cii", "ksef", "fatturapa"} <= {f["id"] for f in data}

    def test_format_detail(self, client):
        response = client.get("/formats/ksef")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["metadata"]["display_name"] == "KSeF FA(3)"
        assert data["field_config"]["fields"]["notes"] == "hidden"
        assert data["field_config"]["fields"]["seller_vat_id"] == "required"

    def test_unknown_format(self, client):
        response = client.get("/formats/zugferd-extended")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert "zugferd-extended" in response.json()["detail"]


class TestTotalsEndpoint:
    """Tests for POST /totals."""

    def test_allowance_reduces_basis(self, client):
        payload = {
            "lineItems": [{"totalPrice": 100.00, "taxRate": 19}],
            "allowanceCharges": [{"chargeIndicator": False, "amount": 10.00, "taxRate": 19}],
        }
        response = client.post("/totals", json=payload)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["totals"] == {"subtotal": 90.0, "tax_amount": 17.1, "total_amount": 107.1, "amount_due": 107.1}
        assert data["tax_breakdown"][0]["tax_category_code"] == "S"

    def test_snake_case_input(self, client):
        payload = {"line_items": [{"total_price": "1.000,00", "tax_rate": "7"}]}
        data = client.post("/totals", json=payload).json()
        assert data["totals"]["tax_amount"] == 70.0

    def test_prepaid_amount(self, client):
        payload = {"lineItems": [{"totalPrice": "1.000,00", "taxRate": 19}], "prepaidAmount": "190,00"}
        data = client.post("/totals", json=payload).json()
        assert data["totals"]["total_amount"] == 1190.0
        assert data["totals"]["amount_due"] == 1000.0

    def test_empty_input(self, client):
        data = client.post("/totals", json={}).json()
        assert data["totals"]["total_amount"] == 0.0
        assert data["tax_breakdown"] == []


class TestValidateEndpoints:
    """Tests for single and batch certification."""

    def test_ready_invoice(self, client, invoice_data):
        response = client.post("/validate", params={"output_format": "xrechnung-cii"}, json=invoice_data)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["summary"]["is_ready"] is True
        assert data["errors"] == []
        assert data["totals"]["total_amount"] == 1071.0

    def test_gross_invoice(self, client, gross_invoice_data):
        data = client.post("/validate", params={"output_format": "peppol-bis"}, json=gross_invoice_data).json()
        assert data["summary"]["is_ready"] is False
        gross = [e for e in data["errors"] if e["rule_id"] == "SEMANTIC-NET-GROSS"]
        assert len(gross) == 1
        assert gross[0]["expected"] == "19.90"
        assert gross[0]["actual"] == "23.68"

    def test_stored_totals_without_recompute(self, client, invoice_data):
        invoice_data["totals"] = {"subtotal": 900, "taxAmount": 171, "totalAmount": 1000}
        params = {"output_format": "xrechnung-cii", "recompute": "false"}
        data = client.post("/validate", params=params, json=invoice_data).json()
        assert [e["rule_id"] for e in data["errors"]] == ["BR-CO-15"]

    def test_wrong_currency_for_xrechnung(self, client, invoice_data):
        invoice_data["currency"] = "CHF"
        data = client.post("/validate", params={"output_format": "xrechnung-cii"}, json=invoice_data).json()
        assert data["summary"]["is_ready"] is False
        assert [e["rule_id"] for e in data["errors"]] == ["BR-DE-18"]

    def test_huge_amount_does_not_fail_request(self, client, invoice_data):
        invoice_data["lineItems"].append({"description": "Scan noise", "totalPrice": 10**400, "taxRate": 19})
        response = client.post("/validate", params={"output_format": "xrechnung-cii"}, json=invoice_data)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["totals"]["total_amount"] == 1071.0

    def test_unknown_format_falls_back(self, client, invoice_data):
        data = client.post("/validate", params={"output_format": "zugferd-extended"}, json=invoice_data).json()
        assert data["output_format"] == "zugferd-extended"
        assert data["summary"]["is_ready"] is True

    def test_batch(self, client, invoice_data, gross_invoice_data):
        payload = {"invoices": [invoice_data, gross_invoice_data], "output_format": "xrechnung-cii"}
        response = client.post("/validate-batch", json=payload)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["summary"]["total_invoices"] == 2
        assert data["summary"]["ready_invoices"] == 1
        assert data["summary"]["error_counts"] == {"SEMANTIC-NET-GROSS": 1}
        assert len(data["per_invoice_results"]) == 2

    def test_empty_batch_rejected(self, client):
        response = client.post("/validate-batch", json={"invoices": []})
        assert response.status_code == 422
