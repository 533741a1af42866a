"""
Pydantic models for canonical invoice data and compliance results.

This module defines the core data structures used throughout the service:
- CanonicalInvoice and its parts (Party, PaymentInfo, LineItem,
  AllowanceCharge, DocumentTotals), the normalized shape every rule and
  calculation operates on
- ValidationError, CheckResult and ComplianceSummary for rule outcomes
- ComplianceReport and BatchReport for per-invoice and batch verdicts
- FormatFieldConfig and FormatMetadata for the format profile registry

Invoice models are deliberately lenient. They are built from AI extraction
output, which is best-effort: any field may be null, numbers may arrive as
strings with either decimal separator, and nested objects may be missing.
Such input degrades to ``None`` rather than being rejected, so that the
business rules can report what is wrong.
"""

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import MAX_AMOUNT, Obligation, Severity


# ============================================================================
# Lenient Input Coercion
# ============================================================================

def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a numeric value from extraction output.

    Accepts numbers and numeric strings such as "1.234,56", "1,234.56",
    "1.234.567", "19,9" or "€ 12.00". A separator that occurs more than
    once is a thousands separator; a single comma is a decimal comma.

    Returns None for anything that is not a finite number, and for
    magnitudes above MAX_AMOUNT.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return _bounded(float(value))
        except OverflowError:
            return None
    if not isinstance(value, str):
        return None

    text = "".join(ch for ch in value if ch in "0123456789,.-")
    if not any(ch.isdigit() for ch in text):
        return None

    if "," in text and "." in text:
        # The right-most separator is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") > 1 or text.count(".") > 1:
        text = text.replace(",", "").replace(".", "")
    elif "," in text:
        text = text.replace(",", ".")

    try:
        return _bounded(float(text))
    except ValueError:
        return None


def _bounded(number: float) -> Optional[float]:
    if not math.isfinite(number) or abs(number) > MAX_AMOUNT:
        return None
    return number


def clean_text(value: Any) -> Optional[str]:
    """Strip strings and stringify scalars; blank values become None."""
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    text = str(value).strip()
    return text or None


class _LenientModel(BaseModel):
    """
    Base for invoice payload models: camelCase aliases, no strictness.

    Field edits go through the same coercion as the payload, so an edited
    amount is bounded and parsed like an extracted one.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )


# ============================================================================
# Canonical Invoice Model
# ============================================================================

class Party(_LenientModel):
    """
    Seller (BG-4) or buyer (BG-7) of an invoice.

    Structured address fields map to BT-35/37/38/40 for the seller and
    BT-50/52/53/55 for the buyer.
    """
    name: Optional[str] = Field(None, description="Legal name (BT-27 / BT-44)")
    email: Optional[str] = Field(None, description="Contact email address")
    phone: Optional[str] = Field(None, description="Contact phone number")
    contact_name: Optional[str] = Field(None, description="Contact person (BT-41 / BT-56)")
    street: Optional[str] = Field(None, description="Street address line")
    city: Optional[str] = Field(None, description="City")
    postal_code: Optional[str] = Field(None, description="Postal code")
    country_code: Optional[str] = Field(None, description="ISO 3166-1 alpha-2 country code")
    vat_id: Optional[str] = Field(None, description="VAT identifier with country prefix (BT-31 / BT-48)")
    tax_number: Optional[str] = Field(None, description="Local tax registration number (BT-32)")
    electronic_address: Optional[str] = Field(None, description="Electronic address (BT-34 / BT-49)")
    electronic_address_scheme: Optional[str] = Field(None, description="Electronic address scheme (EAS code)")
    codice_destinatario: Optional[str] = Field(None, description="Italian SDI routing code (7 characters)")

    @field_validator("*", mode="before")
    @classmethod
    def clean_strings(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("country_code")
    @classmethod
    def normalize_country(cls, v: Optional[str]) -> Optional[str]:
        """Normalize country code to uppercase."""
        return v.upper() if v else v


class PaymentInfo(_LenientModel):
    """Payment terms and the seller's bank account (BG-16 / BG-17)."""
    iban: Optional[str] = Field(None, description="Seller IBAN (BT-84)")
    bic: Optional[str] = Field(None, description="Seller BIC (BT-86)")
    bank_name: Optional[str] = Field(None, description="Bank name")
    payment_terms: Optional[str] = Field(None, description="Payment terms text (BT-20)")
    due_date: Optional[str] = Field(None, description="Payment due date (BT-9), YYYY-MM-DD")
    prepaid_amount: Optional[float] = Field(None, description="Prepaid amount (BT-113)")

    @field_validator("iban", "bic", "bank_name", "payment_terms", "due_date", mode="before")
    @classmethod
    def clean_strings(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("prepaid_amount", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)


class LineItem(_LenientModel):
    """
    A single invoice line (BG-25).

    Attributes:
        description: Item name (BT-153)
        quantity: Invoiced quantity (BT-129)
        unit_price: Net unit price (BT-146)
        total_price: Net line amount (BT-131), which must exclude tax
        tax_rate: VAT rate percentage (BT-152), None when unknown
        tax_category_code: VAT category code (BT-151), e.g. "S" or "E"
        unit_code: Unit of measure (BT-130), UNECE Rec 20
    """
    description: Optional[str] = Field(None, description="Item or service description")
    quantity: Optional[float] = Field(None, description="Invoiced quantity")
    unit_price: Optional[float] = Field(None, description="Net price per unit")
    total_price: Optional[float] = Field(None, description="Net line amount (excluding tax)")
    tax_rate: Optional[float] = Field(None, description="Tax rate percentage")
    tax_category_code: Optional[str] = Field(None, description="Tax category code (S, E, Z, AE, ...)")
    unit_code: Optional[str] = Field(None, description="Unit of measure code (e.g. C62, HUR)")

    @field_validator("description", "tax_category_code", "unit_code", mode="before")
    @classmethod
    def clean_strings(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("quantity", "unit_price", "total_price", "tax_rate", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "description": "Consulting services",
                    "quantity": 10,
                    "unitPrice": 100.00,
                    "totalPrice": 1000.00,
                    "taxRate": 19,
                    "taxCategoryCode": "S",
                    "unitCode": "HUR"
                }
            ]
        }
    }


class AllowanceCharge(_LenientModel):
    """
    Document-level allowance (BG-20) or charge (BG-21).

    The amount is always non-negative; ``charge_indicator`` decides whether
    it is subtracted from (allowance) or added to (charge) the tax basis.
    """
    charge_indicator: bool = Field(False, description="False = allowance/discount, True = charge/surcharge")
    amount: Optional[float] = Field(None, description="Amount (BT-92 / BT-99), non-negative")
    base_amount: Optional[float] = Field(None, description="Base amount for percentage (BT-93 / BT-100)")
    percentage: Optional[float] = Field(None, description="Percentage (BT-94 / BT-101)")
    reason: Optional[str] = Field(None, description="Reason text (BT-97 / BT-104)")
    reason_code: Optional[str] = Field(None, description="Reason code (BT-98 / BT-105)")
    tax_rate: Optional[float] = Field(None, description="Tax rate percentage applied to this amount")
    tax_category_code: Optional[str] = Field(None, description="Tax category code (BT-95 / BT-102)")

    @field_validator("charge_indicator", mode="before")
    @classmethod
    def parse_indicator(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"true", "1", "yes", "charge"}
        return bool(v)

    @field_validator("amount", "base_amount", "percentage", "tax_rate", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)

    @field_validator("reason", "reason_code", "tax_category_code", mode="before")
    @classmethod
    def clean_strings(cls, v: Any) -> Optional[str]:
        return clean_text(v)


class DocumentTotals(_LenientModel):
    """
    Document totals (BG-22). Missing or unparseable amounts read as 0.

    ``amount_due`` stays None when the extraction carried no amount due;
    recomputed totals always fill it in.
    """
    subtotal: float = Field(0.0, description="Total without tax (BT-109)")
    tax_amount: float = Field(0.0, description="Total tax amount (BT-110)")
    total_amount: float = Field(0.0, description="Total with tax (BT-112)")
    amount_due: Optional[float] = Field(None, description="Amount due for payment (BT-115)")

    @field_validator("subtotal", "tax_amount", "total_amount", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> float:
        number = parse_amount(v)
        return number if number is not None else 0.0

    @field_validator("amount_due", mode="before")
    @classmethod
    def parse_amount_due(cls, v: Any) -> Optional[float]:
        return parse_amount(v)


class CanonicalInvoice(_LenientModel):
    """
    Canonical invoice, independent of any output wire format.

    Built once per extraction/review session and edited field by field.
    Totals are recomputed and rules re-evaluated against the current
    snapshot after every edit; no component keeps invoice state.
    """

    # ========================================================================
    # Document Header (BG-1)
    # ========================================================================
    invoice_number: Optional[str] = Field(None, description="Invoice number (BT-1)")
    invoice_date: Optional[str] = Field(None, description="Issue date (BT-2), YYYY-MM-DD")
    document_type_code: Optional[str] = Field("380", description="Document type (BT-3): 380 invoice, 381 credit note")
    currency: Optional[str] = Field(None, description="ISO 4217 currency code (BT-5)")
    buyer_reference: Optional[str] = Field(None, description="Buyer reference / Leitweg-ID (BT-10)")
    notes: Optional[str] = Field(None, description="Free-text note (BT-22)")
    output_format: Optional[str] = Field(None, description="Target output format id, if already chosen")

    # ========================================================================
    # Parties & Payment
    # ========================================================================
    seller: Party = Field(default_factory=Party)
    buyer: Party = Field(default_factory=Party)
    payment: PaymentInfo = Field(default_factory=PaymentInfo)

    # ========================================================================
    # Lines, Allowances/Charges & Totals
    # ========================================================================
    line_items: list[LineItem] = Field(default_factory=list)
    allowance_charges: list[AllowanceCharge] = Field(default_factory=list)
    totals: DocumentTotals = Field(default_factory=DocumentTotals)

    @field_validator(
        "invoice_number", "invoice_date", "document_type_code", "currency",
        "buyer_reference", "notes", "output_format", mode="before",
    )
    @classmethod
    def clean_strings(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        """Normalize currency code to uppercase."""
        return v.upper() if v else v

    @field_validator("seller", "buyer", "payment", "totals", mode="before")
    @classmethod
    def default_missing_objects(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("line_items", "allowance_charges", mode="before")
    @classmethod
    def drop_missing_entries(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [entry for entry in v if entry is not None]
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "invoiceNumber": "RE-2024-0042",
                    "invoiceDate": "2024-03-01",
                    "currency": "EUR",
                    "buyerReference": "04011000-12345-34",
                    "seller": {
                        "name": "Muster GmbH",
                        "email": "rechnung@muster.de",
                        "phone": "+49 30 123456",
                        "street": "Musterstraße 1",
                        "city": "Berlin",
                        "postalCode": "10115",
                        "countryCode": "DE",
                        "vatId": "DE123456789"
                    },
                    "buyer": {
                        "name": "Beispiel AG",
                        "countryCode": "DE",
                        "electronicAddress": "einkauf@beispiel.de"
                    },
                    "payment": {
                        "iban": "DE89370400440532013000",
                        "paymentTerms": "Zahlbar innerhalb von 14 Tagen"
                    },
                    "lineItems": [
                        {
                            "description": "Beratung",
                            "quantity": 10,
                            "unitPrice": 100.00,
                            "totalPrice": 1000.00,
                            "taxRate": 19
                        }
                    ],
                    "allowanceCharges": [
                        {"chargeIndicator": False, "amount": 100.00, "taxRate": 19, "reason": "Rabatt"}
                    ],
                    "totals": {"subtotal": 900.00, "taxAmount": 171.00, "totalAmount": 1071.00}
                }
            ]
        }
    }


# ============================================================================
# Rule Outcomes
# ============================================================================

class ValidationError(BaseModel):
    """
    A failed business rule.

    Money values in ``expected`` / ``actual`` are formatted to 2 decimals.
    """
    rule_id: str = Field(..., description="Stable rule code, e.g. BR-CO-10 or SEMANTIC-NET-GROSS")
    severity: Severity = Field(..., description="error blocks document generation, warning does not")
    message: str = Field(..., description="Human-readable description of the failure")
    field: Optional[str] = Field(None, description="Logical field the failure refers to")
    expected: Optional[str] = Field(None, description="Expected value")
    actual: Optional[str] = Field(None, description="Actual value")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "rule_id": "SEMANTIC-NET-GROSS",
                    "severity": "error",
                    "message": "Line item 1: total 23.68 appears to be GROSS (incl. 19% tax); EN 16931 requires NET line amounts (BT-131), expected 19.90",
                    "field": "line_items[0].total_price",
                    "expected": "19.90",
                    "actual": "23.68"
                }
            ]
        }
    }


class CheckResult(BaseModel):
    """Outcome of one executed check, passed or failed."""
    rule_id: str
    severity: Severity
    passed: bool
    errors: list[ValidationError] = Field(default_factory=list)


class ComplianceSummary(BaseModel):
    """
    Pass/fail counts for one evaluation run, partitioned by severity.

    ``is_ready`` is true iff no error-severity rule failed. Warnings never
    block readiness.
    """
    errors_passed_count: int = Field(..., ge=0)
    errors_total_count: int = Field(..., ge=0)
    warnings_passed_count: int = Field(..., ge=0)
    warnings_total_count: int = Field(..., ge=0)
    is_ready: bool


class TaxBreakdown(BaseModel):
    """Tax subtotal for one rate (BG-23)."""
    tax_rate: float
    tax_category_code: str
    taxable_amount: float
    tax_amount: float


class ComplianceReport(BaseModel):
    """Complete verdict for one invoice and one output format."""
    invoice_id: Optional[str] = Field(None, description="Invoice number, if known")
    output_format: str
    totals: DocumentTotals
    tax_breakdown: list[TaxBreakdown] = Field(default_factory=list)
    errors: list[ValidationError] = Field(default_factory=list)
    summary: ComplianceSummary


class BatchSummary(BaseModel):
    """Aggregated verdicts for a batch of invoices."""
    total_invoices: int = Field(..., ge=0)
    ready_invoices: int = Field(..., ge=0)
    not_ready_invoices: int = Field(..., ge=0)
    error_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Occurrences of each failing error rule id across the batch",
    )
    warning_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Occurrences of each failing warning rule id across the batch",
    )


class BatchReport(BaseModel):
    """Per-invoice reports plus the batch summary."""
    summary: BatchSummary
    per_invoice_results: list[ComplianceReport] = Field(default_factory=list)


# ============================================================================
# Format Profile Registry Models
# ============================================================================

class FieldPattern(BaseModel):
    """
    A format-specific constraint on the value of one logical field.

    The value is checked only when it is non-blank and, if ``prefix`` is
    set, only when it starts with that prefix (e.g. Dutch VAT ids in an
    invoice that may also carry foreign ones). Characters matching
    ``ignore`` are removed before matching.
    """
    rule_id: str = Field(..., description="Rule code, e.g. BR-DE-18 or KSEF-01")
    field: str = Field(..., description="Logical field name from the registry")
    pattern: str = Field(..., description="Regular expression the whole value must match")
    message: str = Field(..., description="Explanation used when the value does not match")
    prefix: Optional[str] = None
    ignore: Optional[str] = None
    severity: Severity = Severity.ERROR

    model_config = ConfigDict(frozen=True)


class FormatFieldConfig(BaseModel):
    """Field obligations, value constraints and input hints for one output format."""
    format_id: str
    fields: dict[str, Obligation]
    hints: dict[str, str] = Field(default_factory=dict)
    warning_fields: frozenset[str] = Field(
        default_factory=frozenset,
        description="Required fields whose absence is only a warning",
    )
    value_rules: tuple[FieldPattern, ...] = Field(
        default_factory=tuple,
        description="Value constraints checked on non-blank, visible fields",
    )

    model_config = ConfigDict(frozen=True)


class FormatMetadata(BaseModel):
    """Descriptive metadata for an output format."""
    id: str
    display_name: str
    description: str
    countries: list[str]
    syntax_type: str
    mime_type: str
    file_extension: str
    is_eu: bool


# ============================================================================
# API Request/Response Models
# ============================================================================

class TotalsRequest(_LenientModel):
    """Request body for the /totals endpoint."""
    line_items: list[LineItem] = Field(default_factory=list)
    allowance_charges: list[AllowanceCharge] = Field(default_factory=list)
    prepaid_amount: Optional[float] = Field(None, description="Prepaid amount (BT-113)")

    @field_validator("prepaid_amount", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)


class TotalsResponse(BaseModel):
    """Response for the /totals endpoint."""
    totals: DocumentTotals
    tax_breakdown: list[TaxBreakdown]


class ValidateBatchRequest(BaseModel):
    """Request body for the /validate-batch endpoint."""
    invoices: list[CanonicalInvoice] = Field(
        ...,
        min_length=1,
        description="Invoices to certify",
    )
    output_format: Optional[str] = Field(
        None,
        description="Format to certify against; defaults to each invoice's own output_format",
    )
