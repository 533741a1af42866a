"""
Business rules for e-invoice compliance.

This module defines the rules a canonical invoice is certified against,
organized by category:
- Presence rules: fields the active format profile marks as required
- Structural rules: ISO dates, IBAN structure and mod-97 checksum, code
  lists, and the value patterns of the format profile
- Arithmetic rules: EN 16931 monetary cross-checks (BR-CO-10/14/15/16)
- Semantic rules: line totals that look GROSS where NET is required

Each rule is a function taking the invoice and a RuleContext and returning
one CheckResult per executed check, passed or failed. Rules never raise on
incomplete data: a blank field fails its presence rule, and any rule that
depends on that field skips itself instead of reporting a secondary error.

Presence and value rules are driven by the format profile registry, so no
rule branches on the output format. Code list, arithmetic and semantic rules
run for every format.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .config import (
    DATE_PATTERN,
    IBAN_PATTERN,
    ISO_DATE_FORMAT,
    MONETARY_TOLERANCE,
    SEMANTIC_TOLERANCE,
    Obligation,
    RuleCategory,
    Severity,
    logger,
)
from .monetary import (
    add_money,
    adjusted_line_sum_cents,
    compute_totals,
    format_money,
    from_cents,
    multiply_money,
    tax_cents,
    to_cents,
)
from .profiles import (
    COUNTRY_CODES,
    CURRENCY_CODES,
    DOCUMENT_TYPE_CODES,
    FIELD_ALTERNATIVES,
    PRESENCE_FIELDS,
    TAX_CATEGORY_CODES,
    UNIT_CODES,
    FormatId,
    format_key,
    get_field_config,
)
from .schemas import CanonicalInvoice, CheckResult, DocumentTotals, FormatFieldConfig, ValidationError


@dataclass(frozen=True)
class RuleContext:
    """
    Facts shared by all rules of one evaluation pass.

    Attributes:
        output_format: Normalized output format id
        profile: Field configuration of that format
        recomputed: Totals derived from the invoice lines and allowances
    """
    output_format: str
    profile: FormatFieldConfig
    recomputed: DocumentTotals


# The function takes an Invoice and the evaluation context, returns check outcomes
RuleCheckFn = Callable[[CanonicalInvoice, RuleContext], list[CheckResult]]


@dataclass
class ValidationRule:
    """
    Represents a single business rule.

    Attributes:
        code: Machine-readable rule code (e.g., "BR-CO-10")
        description: Human-readable description of the rule
        category: Category of the rule
        check: Function that performs the checks
    """
    code: str
    description: str
    category: RuleCategory
    check: RuleCheckFn


def _passed(rule_id: str, severity: Severity) -> CheckResult:
    return CheckResult(rule_id=rule_id, severity=severity, passed=True)


def _failed(rule_id: str, severity: Severity, message: str, **details: Optional[str]) -> CheckResult:
    error = ValidationError(rule_id=rule_id, severity=severity, message=message, **details)
    return CheckResult(rule_id=rule_id, severity=severity, passed=False, errors=[error])


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


# ============================================================================
# Logical Field Accessors
# ============================================================================

FIELD_ACCESSORS: dict[str, Callable[[CanonicalInvoice], Any]] = {
    "invoice_number": lambda inv: inv.invoice_number,
    "invoice_date": lambda inv: inv.invoice_date,
    "currency": lambda inv: inv.currency,
    "seller_name": lambda inv: inv.seller.name,
    "seller_contact_name": lambda inv: inv.seller.contact_name,
    "seller_email": lambda inv: inv.seller.email,
    "seller_phone": lambda inv: inv.seller.phone,
    "seller_street": lambda inv: inv.seller.street,
    "seller_city": lambda inv: inv.seller.city,
    "seller_postal_code": lambda inv: inv.seller.postal_code,
    "seller_country_code": lambda inv: inv.seller.country_code,
    "seller_vat_id": lambda inv: inv.seller.vat_id,
    "seller_tax_number": lambda inv: inv.seller.tax_number,
    "seller_electronic_address": lambda inv: inv.seller.electronic_address,
    "seller_electronic_address_scheme": lambda inv: inv.seller.electronic_address_scheme,
    "seller_iban": lambda inv: inv.payment.iban,
    "seller_bic": lambda inv: inv.payment.bic,
    "buyer_name": lambda inv: inv.buyer.name,
    "buyer_street": lambda inv: inv.buyer.street,
    "buyer_city": lambda inv: inv.buyer.city,
    "buyer_postal_code": lambda inv: inv.buyer.postal_code,
    "buyer_country_code": lambda inv: inv.buyer.country_code,
    "buyer_vat_id": lambda inv: inv.buyer.vat_id,
    "buyer_tax_number": lambda inv: inv.buyer.tax_number,
    "buyer_reference": lambda inv: inv.buyer_reference,
    "buyer_electronic_address": lambda inv: inv.buyer.electronic_address,
    "buyer_electronic_address_scheme": lambda inv: inv.buyer.electronic_address_scheme,
    "buyer_codice_destinatario": lambda inv: inv.buyer.codice_destinatario,
    "payment_terms": lambda inv: inv.payment.payment_terms,
    "notes": lambda inv: inv.notes,
    "line_items": lambda inv: inv.line_items,
}

FIELD_LABELS: dict[str, str] = {
    "invoice_number": "Invoice number (BT-1)",
    "invoice_date": "Invoice date (BT-2)",
    "currency": "Currency (BT-5)",
    "seller_name": "Seller name (BT-27)",
    "seller_contact_name": "Seller contact name (BT-41)",
    "seller_email": "Seller email (BT-43)",
    "seller_phone": "Seller phone (BT-42)",
    "seller_street": "Seller street (BT-35)",
    "seller_city": "Seller city (BT-37)",
    "seller_postal_code": "Seller postal code (BT-38)",
    "seller_country_code": "Seller country code (BT-40)",
    "seller_vat_id": "Seller VAT identifier (BT-31)",
    "seller_tax_number": "Seller tax registration number (BT-32)",
    "seller_electronic_address": "Seller electronic address (BT-34)",
    "seller_electronic_address_scheme": "Seller electronic address scheme (BT-34-1)",
    "seller_iban": "Seller IBAN (BT-84)",
    "seller_bic": "Seller BIC (BT-86)",
    "buyer_name": "Buyer name (BT-44)",
    "buyer_street": "Buyer street (BT-50)",
    "buyer_city": "Buyer city (BT-52)",
    "buyer_postal_code": "Buyer postal code (BT-53)",
    "buyer_country_code": "Buyer country code (BT-55)",
    "buyer_vat_id": "Buyer VAT identifier (BT-48)",
    "buyer_tax_number": "Buyer tax registration number",
    "buyer_reference": "Buyer reference / Leitweg-ID (BT-10)",
    "buyer_electronic_address": "Buyer electronic address (BT-49)",
    "buyer_electronic_address_scheme": "Buyer electronic address scheme (BT-49-1)",
    "buyer_codice_destinatario": "Buyer SDI routing code (CodiceDestinatario)",
    "payment_terms": "Payment terms (BT-20)",
    "notes": "Invoice note (BT-22)",
    "line_items": "At least one line item (BG-25)",
}


def get_field_value(invoice: CanonicalInvoice, field: str) -> Any:
    """Read a logical field from the invoice; unknown names read as None."""
    accessor = FIELD_ACCESSORS.get(field)
    return accessor(invoice) if accessor else None


# ============================================================================
# Presence Rules
# ============================================================================

def check_required_fields(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    Every field the format marks as required must be non-blank.

    A field listed in FIELD_ALTERNATIVES is satisfied by any of its
    alternatives (e.g. a tax number in place of a VAT id). Fields in the
    profile's warning_fields fail with warning severity.
    """
    results: list[CheckResult] = []
    for field in PRESENCE_FIELDS:
        if ctx.profile.fields.get(field, Obligation.OPTIONAL) != Obligation.REQUIRED:
            continue

        rule_id = f"missing_field:{field}"
        severity = Severity.WARNING if field in ctx.profile.warning_fields else Severity.ERROR
        candidates = (field,) + FIELD_ALTERNATIVES.get(field, ())

        if any(not _is_blank(get_field_value(invoice, name)) for name in candidates):
            results.append(_passed(rule_id, severity))
            continue

        message = f"{FIELD_LABELS.get(field, field)} is required for {ctx.output_format}"
        alternatives = FIELD_ALTERNATIVES.get(field, ())
        if alternatives:
            message += " (or " + ", ".join(alternatives) + ")"
        results.append(_failed(rule_id, severity, message, field=field))
    return results


# ============================================================================
# Structural Rules
# ============================================================================

def is_iso_date(value: str) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not DATE_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, ISO_DATE_FORMAT)
    except ValueError:
        return False
    return True


def normalize_iban(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def is_valid_iban_checksum(iban: str) -> bool:
    """
    ISO 7064 mod-97 check of a structurally valid IBAN.

    The first four characters are moved to the end, letters are replaced by
    two-digit numbers (A=10 ... Z=35), and the resulting integer must leave a
    remainder of 1 when divided by 97.
    """
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1


def check_date_formats(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """Invoice date and, when present, due date must be ISO calendar dates."""
    results: list[CheckResult] = []
    for field, value in (
        ("invoice_date", invoice.invoice_date),
        ("due_date", invoice.payment.due_date),
    ):
        if _is_blank(value):
            continue
        rule_id = f"format_error:{field}"
        if is_iso_date(value):
            results.append(_passed(rule_id, Severity.ERROR))
        else:
            results.append(_failed(
                rule_id,
                Severity.ERROR,
                f"{field} must be an ISO calendar date (YYYY-MM-DD), got '{value}'",
                field=field,
                expected="YYYY-MM-DD",
                actual=value,
            ))
    return results


def check_iban(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    The seller IBAN must be structurally valid and pass the mod-97 checksum.

    Failures are errors when the format requires an IBAN and warnings when it
    is optional. Hidden IBANs and blank IBANs are not checked here; a blank
    required IBAN fails its presence rule instead.
    """
    obligation = ctx.profile.fields.get("seller_iban", Obligation.OPTIONAL)
    if obligation == Obligation.HIDDEN or _is_blank(invoice.payment.iban):
        return []

    severity = Severity.ERROR if obligation == Obligation.REQUIRED else Severity.WARNING
    iban = normalize_iban(invoice.payment.iban)

    if not IBAN_PATTERN.match(iban):
        return [_failed(
            "format_error:seller_iban",
            severity,
            "Seller IBAN must be 2 letters, 2 check digits and 4-30 alphanumerics",
            field="seller_iban",
            actual=iban,
        )]

    results = [_passed("format_error:seller_iban", severity)]
    if is_valid_iban_checksum(iban):
        results.append(_passed("checksum_error:seller_iban", severity))
    else:
        results.append(_failed(
            "checksum_error:seller_iban",
            severity,
            "Seller IBAN fails the ISO 7064 mod-97 checksum",
            field="seller_iban",
            actual=iban,
        ))
    return results


def _codelist_check(
    rule_id: str,
    severity: Severity,
    value: Optional[str],
    allowed: frozenset[str],
    label: str,
    field: str,
) -> list[CheckResult]:
    if _is_blank(value):
        return []
    if value.strip().upper() in allowed:
        return [_passed(rule_id, severity)]
    return [_failed(
        rule_id,
        severity,
        f"{label} '{value}' is not a valid code",
        field=field,
        actual=value,
    )]


def check_codelists(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    Coded values must come from their code lists.

    Document type (CL-BT-3), countries (CL-BT-40 / CL-BT-55) and tax
    categories of lines and allowances/charges (CL-BT-151 / CL-BT-95) are
    errors. An unlisted currency (CL-BT-5) or unit of measure (CL-UNIT) is
    only a warning, since both lists are curated subsets. Blank values and
    fields the format hides are not checked.
    """
    hidden = {name for name, obligation in ctx.profile.fields.items() if obligation == Obligation.HIDDEN}
    results = _codelist_check(
        "CL-BT-3", Severity.ERROR, invoice.document_type_code,
        DOCUMENT_TYPE_CODES, "Document type code (BT-3)", "document_type_code",
    )
    if "currency" not in hidden:
        results += _codelist_check(
            "CL-BT-5", Severity.WARNING, invoice.currency,
            CURRENCY_CODES, "Currency (BT-5)", "currency",
        )
    if "seller_country_code" not in hidden:
        results += _codelist_check(
            "CL-BT-40", Severity.ERROR, invoice.seller.country_code,
            COUNTRY_CODES, "Seller country code (BT-40)", "seller_country_code",
        )
    if "buyer_country_code" not in hidden:
        results += _codelist_check(
            "CL-BT-55", Severity.ERROR, invoice.buyer.country_code,
            COUNTRY_CODES, "Buyer country code (BT-55)", "buyer_country_code",
        )

    for index, item in enumerate(invoice.line_items):
        results += _codelist_check(
            "CL-BT-151", Severity.ERROR, item.tax_category_code, TAX_CATEGORY_CODES,
            f"Line item {index + 1}: tax category", f"line_items[{index}].tax_category_code",
        )
        results += _codelist_check(
            "CL-UNIT", Severity.WARNING, item.unit_code, UNIT_CODES,
            f"Line item {index + 1}: unit of measure", f"line_items[{index}].unit_code",
        )

    for index, entry in enumerate(invoice.allowance_charges):
        results += _codelist_check(
            "CL-BT-95", Severity.ERROR, entry.tax_category_code, TAX_CATEGORY_CODES,
            f"Allowance/charge {index + 1}: tax category", f"allowance_charges[{index}].tax_category_code",
        )
    return results


def check_format_values(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    Field values must match the patterns the format profile prescribes.

    Each FieldPattern of the profile checks one visible, non-blank field,
    e.g. EUR for XRechnung (BR-DE-18) or a 10-digit NIP for KSeF.
    """
    results: list[CheckResult] = []
    for rule in ctx.profile.value_rules:
        if ctx.profile.fields.get(rule.field, Obligation.OPTIONAL) == Obligation.HIDDEN:
            continue
        value = get_field_value(invoice, rule.field)
        if _is_blank(value) or not isinstance(value, str):
            continue
        value = value.strip()
        if rule.prefix and not value.upper().startswith(rule.prefix):
            continue

        candidate = re.sub(rule.ignore, "", value) if rule.ignore else value
        if re.fullmatch(rule.pattern, candidate):
            results.append(_passed(rule.rule_id, rule.severity))
            continue

        results.append(_failed(
            rule.rule_id,
            rule.severity,
            f"{FIELD_LABELS.get(rule.field, rule.field)}: {rule.message}, got '{value}'",
            field=rule.field,
            actual=value,
        ))
    return results


# ============================================================================
# Arithmetic Rules
# ============================================================================

def check_line_net_sum(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    BR-CO-10: the sum of line NET amounts, adjusted for document-level
    allowances and charges, must equal the subtotal within tolerance.

    Skipped without line items; their absence is a presence failure.
    """
    if not invoice.line_items:
        return []

    expected_cents = adjusted_line_sum_cents(invoice)
    actual_cents = to_cents(invoice.totals.subtotal)
    if abs(expected_cents - actual_cents) <= to_cents(MONETARY_TOLERANCE):
        return [_passed("BR-CO-10", Severity.ERROR)]

    return [_failed(
        "BR-CO-10",
        Severity.ERROR,
        "Sum of line net amounts (less allowances, plus charges) does not match "
        "the invoice subtotal (BT-109)",
        field="totals.subtotal",
        expected=format_money(from_cents(expected_cents)),
        actual=format_money(invoice.totals.subtotal),
    )]


def check_tax_total(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    BR-CO-14: the stored tax amount must match the tax recomputed per
    component from lines, allowances and charges.
    """
    if not invoice.line_items:
        return []

    expected = ctx.recomputed.tax_amount
    if abs(to_cents(expected) - to_cents(invoice.totals.tax_amount)) <= to_cents(MONETARY_TOLERANCE):
        return [_passed("BR-CO-14", Severity.ERROR)]

    return [_failed(
        "BR-CO-14",
        Severity.ERROR,
        "Total tax amount (BT-110) does not match the tax computed from the tax breakdown",
        field="totals.tax_amount",
        expected=format_money(expected),
        actual=format_money(invoice.totals.tax_amount),
    )]


def check_monetary_balance(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """BR-CO-15: subtotal + tax amount must equal the total amount within tolerance."""
    totals = invoice.totals
    expected = add_money(totals.subtotal, totals.tax_amount)
    if abs(to_cents(expected) - to_cents(totals.total_amount)) <= to_cents(MONETARY_TOLERANCE):
        return [_passed("BR-CO-15", Severity.ERROR)]

    return [_failed(
        "BR-CO-15",
        Severity.ERROR,
        "Invoice total with tax (BT-112) does not equal subtotal + tax amount",
        field="totals.total_amount",
        expected=format_money(expected),
        actual=format_money(totals.total_amount),
    )]


def check_amount_due(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    BR-CO-16: amount due must equal the total amount less the prepaid amount.

    Skipped when the invoice states no amount due.
    """
    totals = invoice.totals
    if totals.amount_due is None:
        return []

    expected_cents = to_cents(totals.total_amount) - to_cents(invoice.payment.prepaid_amount)
    if abs(expected_cents - to_cents(totals.amount_due)) <= to_cents(MONETARY_TOLERANCE):
        return [_passed("BR-CO-16", Severity.ERROR)]

    return [_failed(
        "BR-CO-16",
        Severity.ERROR,
        "Amount due (BT-115) does not equal the total amount less the prepaid amount (BT-113)",
        field="totals.amount_due",
        expected=format_money(from_cents(expected_cents)),
        actual=format_money(totals.amount_due),
    )]


# ============================================================================
# Semantic Rules
# ============================================================================

def check_line_net_gross(invoice: CanonicalInvoice, ctx: RuleContext) -> list[CheckResult]:
    """
    Detect line totals that were extracted as GROSS instead of NET.

    For each line with a positive tax rate and a known quantity and unit
    price, the NET candidate is quantity x unit price and the GROSS candidate
    is NET plus tax. A total off the NET candidate but matching the GROSS one
    is a SEMANTIC-NET-GROSS error. A total matching neither is reported as
    SEMANTIC-LINE-TOTAL-MISMATCH, a warning, since line-level discounts are
    not part of the model and can legitimately lower the total.

    Lines without a tax rate (or at 0%) have no NET/GROSS relationship to
    test and are skipped, as are lines missing quantity, unit price or total.
    """
    results: list[CheckResult] = []
    tolerance = to_cents(SEMANTIC_TOLERANCE)

    for index, item in enumerate(invoice.line_items):
        rate = item.tax_rate
        if not rate or rate <= 0:
            continue
        if item.quantity is None or item.unit_price is None or item.total_price is None:
            continue

        field = f"line_items[{index}].total_price"
        position = index + 1
        net_cents = to_cents(multiply_money(item.quantity, item.unit_price))
        gross_cents = net_cents + tax_cents(net_cents, rate)
        total_cents = to_cents(item.total_price)
        rate_label = f"{rate:g}%"

        if abs(total_cents - net_cents) <= tolerance:
            results.append(_passed("SEMANTIC-NET-GROSS", Severity.ERROR))
            results.append(_passed("SEMANTIC-LINE-TOTAL-MISMATCH", Severity.WARNING))
        elif abs(total_cents - gross_cents) <= tolerance:
            results.append(_failed(
                "SEMANTIC-NET-GROSS",
                Severity.ERROR,
                f"Line item {position}: total {format_money(item.total_price)} appears to be GROSS "
                f"(incl. {rate_label} tax); EN 16931 requires NET line amounts "
                f"(BT-131), expected {format_money(from_cents(net_cents))}",
                field=field,
                expected=format_money(from_cents(net_cents)),
                actual=format_money(item.total_price),
            ))
            results.append(_passed("SEMANTIC-LINE-TOTAL-MISMATCH", Severity.WARNING))
        else:
            results.append(_passed("SEMANTIC-NET-GROSS", Severity.ERROR))
            results.append(_failed(
                "SEMANTIC-LINE-TOTAL-MISMATCH",
                Severity.WARNING,
                f"Line item {position}: total {format_money(item.total_price)} matches neither "
                f"quantity x unit price (NET {format_money(from_cents(net_cents))}) nor the "
                f"GROSS amount {format_money(from_cents(gross_cents))}",
                field=field,
                expected=format_money(from_cents(net_cents)),
                actual=format_money(item.total_price),
            ))
    return results


# ============================================================================
# Rule Registry
# ============================================================================

# All business rules in execution order
VALIDATION_RULES: list[ValidationRule] = [
    ValidationRule(
        code="missing_field",
        description="Fields required by the output format must not be blank",
        category=RuleCategory.PRESENCE,
        check=check_required_fields,
    ),
    ValidationRule(
        code="format_error:date",
        description="Invoice and due dates must be ISO calendar dates (YYYY-MM-DD)",
        category=RuleCategory.STRUCTURAL,
        check=check_date_formats,
    ),
    ValidationRule(
        code="format_error:seller_iban",
        description="Seller IBAN must be well-formed and pass the mod-97 checksum",
        category=RuleCategory.STRUCTURAL,
        check=check_iban,
    ),
    ValidationRule(
        code="codelist",
        description="Coded values (document type, currency, countries, tax categories, units) come from their code lists",
        category=RuleCategory.STRUCTURAL,
        check=check_codelists,
    ),
    ValidationRule(
        code="format_value",
        description="Field values match the patterns of the output format (e.g. BR-DE-18, KSeF NIP)",
        category=RuleCategory.STRUCTURAL,
        check=check_format_values,
    ),
    ValidationRule(
        code="BR-CO-10",
        description="Sum of line net amounts, less allowances, plus charges, equals the subtotal",
        category=RuleCategory.ARITHMETIC,
        check=check_line_net_sum,
    ),
    ValidationRule(
        code="BR-CO-14",
        description="Total tax amount equals the tax computed per line, allowance and charge",
        category=RuleCategory.ARITHMETIC,
        check=check_tax_total,
    ),
    ValidationRule(
        code="BR-CO-15",
        description="Subtotal + tax amount equals the total amount",
        category=RuleCategory.ARITHMETIC,
        check=check_monetary_balance,
    ),
    ValidationRule(
        code="BR-CO-16",
        description="Amount due equals the total amount less the prepaid amount",
        category=RuleCategory.ARITHMETIC,
        check=check_amount_due,
    ),
    ValidationRule(
        code="SEMANTIC-NET-GROSS",
        description="Line totals must be NET; flags GROSS amounts and other mismatches",
        category=RuleCategory.SEMANTIC,
        check=check_line_net_gross,
    ),
]


def get_rules_by_category(category: RuleCategory) -> list[ValidationRule]:
    """Get all rules belonging to a specific category."""
    return [rule for rule in VALIDATION_RULES if rule.category == category]


def get_rule_descriptions() -> dict[str, str]:
    """Get a mapping of rule codes to their descriptions."""
    return {rule.code: rule.description for rule in VALIDATION_RULES}


# ============================================================================
# Evaluation
# ============================================================================

def evaluate_checks(
    invoice: CanonicalInvoice,
    output_format: FormatId,
    registry: Optional[Mapping[str, FormatFieldConfig]] = None,
    rules: Optional[list[ValidationRule]] = None,
) -> list[CheckResult]:
    """
    Run every rule for one output format and return all check outcomes.

    Args:
        invoice: Current snapshot of the invoice
        output_format: Output format id; unknown ids use the universal profile
        registry: Optional field configuration table (defaults to FORMAT_FIELD_CONFIG)
        rules: Optional list of rules to apply (defaults to all VALIDATION_RULES)

    Returns:
        One CheckResult per executed check, in rule order
    """
    if rules is None:
        rules = VALIDATION_RULES

    key = format_key(output_format)
    results: list[CheckResult] = []
    try:
        recomputed = compute_totals(invoice.line_items, invoice.allowance_charges, invoice.payment.prepaid_amount)
    except ArithmeticError as e:
        logger.error(f"Could not derive totals for invoice {invoice.invoice_number}: {e}")
        results.append(_failed(
            "rule_error:totals",
            Severity.ERROR,
            f"Totals could not be derived from the line items: {e}",
        ))
        recomputed = invoice.totals

    ctx = RuleContext(
        output_format=key,
        profile=get_field_config(key, registry),
        recomputed=recomputed,
    )

    for rule in rules:
        try:
            results.extend(rule.check(invoice, ctx))
        except Exception as e:
            logger.error(f"Error running rule {rule.code} on invoice {invoice.invoice_number}: {e}")
            results.append(_failed(
                f"rule_error:{rule.code}",
                Severity.ERROR,
                f"Rule {rule.code} could not be evaluated: {e}",
            ))

    logger.debug(
        f"Evaluated invoice {invoice.invoice_number} for {key}: "
        f"{sum(1 for r in results if not r.passed)} of {len(results)} checks failed"
    )
    return results


def evaluate(
    invoice: CanonicalInvoice,
    output_format: FormatId,
    registry: Optional[Mapping[str, FormatFieldConfig]] = None,
    rules: Optional[list[ValidationRule]] = None,
) -> list[ValidationError]:
    """
    Evaluate an invoice against the rules of one output format.

    Deterministic and side-effect free: each call is a fresh function of the
    invoice snapshot. Blank or missing fields fail their rules; nothing is
    raised for incomplete data.

    Returns:
        All validation errors and warnings, in rule order
    """
    return [
        error
        for result in evaluate_checks(invoice, output_format, registry, rules)
        for error in result.errors
    ]
