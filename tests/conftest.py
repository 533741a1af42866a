"""
Shared fixtures for the e-invoice compliance tests.
"""

import pytest

from einvoice_qc.schemas import CanonicalInvoice, LineItem


@pytest.fixture
def invoice_data() -> dict:
    """Raw camelCase payload of an invoice that is ready for XRechnung."""
    return {
        "invoiceNumber": "RE-2024-0042",
        "invoiceDate": "2024-03-01",
        "currency": "EUR",
        "buyerReference": "04011000-12345-34",
        "seller": {
            "name": "Muster GmbH",
            "contactName": "Erika Mustermann",
            "email": "rechnung@muster.de",
            "phone": "+49 30 123456",
            "street": "Musterstraße 1",
            "city": "Berlin",
            "postalCode": "10115",
            "countryCode": "DE",
            "vatId": "DE123456789",
            "electronicAddress": "rechnung@muster.de",
        },
        "buyer": {
            "name": "Beispiel AG",
            "street": "Hauptstraße 5",
            "city": "München",
            "postalCode": "80331",
            "countryCode": "DE",
            "electronicAddress": "einkauf@beispiel.de",
        },
        "payment": {
            "iban": "DE89370400440532013000",
            "paymentTerms": "Zahlbar innerhalb von 14 Tagen",
        },
        "lineItems": [
            {
                "description": "Beratung",
                "quantity": 10,
                "unitPrice": 100.00,
                "totalPrice": 1000.00,
                "taxRate": 19,
            }
        ],
        "allowanceCharges": [
            {"chargeIndicator": False, "amount": 100.00, "taxRate": 19, "reason": "Rabatt"}
        ],
        "totals": {"subtotal": 900.00, "taxAmount": 171.00, "totalAmount": 1071.00},
    }


@pytest.fixture
def xrechnung_invoice(invoice_data) -> CanonicalInvoice:
    """An invoice that passes every XRechnung CII rule."""
    return CanonicalInvoice.model_validate(invoice_data)


@pytest.fixture
def gross_line_item() -> LineItem:
    """A line whose total was extracted including 19% tax."""
    return LineItem(
        description="Widget",
        quantity=1,
        unit_price=19.90,
        total_price=23.68,
        tax_rate=19,
    )
