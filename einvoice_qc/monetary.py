"""
Decimal-safe monetary arithmetic and invoice totals derivation.

All public helpers accept and return plain floats representing amounts with
up to 2 decimal places. Internally every calculation runs on integer cents,
so sums never accumulate binary floating-point drift.

Rounding policy: commercial rounding (ROUND_HALF_UP). Amounts are converted
to cents through their shortest decimal representation, so ``1.005`` becomes
101 cents rather than the 100 a naive ``round(1.005 * 100)`` would give.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Optional

from .config import MONETARY_TOLERANCE
from .schemas import AllowanceCharge, CanonicalInvoice, DocumentTotals, LineItem, TaxBreakdown


# ============================================================================
# Cent Conversion & Money Helpers
# ============================================================================

# Exact for products of two finite floats expressed in cents
_CENTS_CONTEXT = Context(prec=700, rounding=ROUND_HALF_UP)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), context=_CENTS_CONTEXT))


def to_cents(amount: Optional[float]) -> int:
    """Convert an amount (19.99) to integer cents (1999). None reads as 0."""
    if amount is None:
        return 0
    with localcontext(_CENTS_CONTEXT):
        return _round_half_up(Decimal(str(amount)) * 100)


def from_cents(cents: int) -> float:
    """Convert integer cents back to a 2-decimal amount."""
    return cents / 100


def round_money(value: float) -> float:
    """Round a number to exactly 2 decimal places."""
    return from_cents(to_cents(value))


def add_money(a: float, b: float) -> float:
    return from_cents(to_cents(a) + to_cents(b))


def subtract_money(a: float, b: float) -> float:
    return from_cents(to_cents(a) - to_cents(b))


def multiply_money(amount: float, factor: float) -> float:
    """Multiply an amount by a factor (e.g. quantity x unit price), rounded to cents."""
    with localcontext(_CENTS_CONTEXT):
        return from_cents(_round_half_up(Decimal(str(amount)) * Decimal(str(factor)) * 100))


def sum_money(amounts: Iterable[Optional[float]]) -> float:
    return from_cents(sum(to_cents(amount) for amount in amounts))


def tax_cents(basis_cents: int, rate_percent: Optional[float]) -> int:
    """Tax on an amount given in cents, rounded to whole cents."""
    if not rate_percent:
        return 0
    with localcontext(_CENTS_CONTEXT):
        return _round_half_up(Decimal(basis_cents) * Decimal(str(rate_percent)) / 100)


def compute_tax(basis_amount: float, rate_percent: float) -> float:
    """
    Compute tax: basis * (rate / 100), rounded to 2 decimals.

    Args:
        basis_amount: Net amount (e.g. 100.00)
        rate_percent: Tax rate as percentage (e.g. 19 for 19%)
    """
    return from_cents(tax_cents(to_cents(basis_amount), rate_percent))


def money_equal(a: float, b: float, tolerance: float = 0.01) -> bool:
    """Check if two amounts are equal within an absolute tolerance, compared in cents."""
    return abs(to_cents(a) - to_cents(b)) <= to_cents(tolerance)


def format_money(amount: Optional[float]) -> str:
    """Format an amount to exactly 2 decimal places ("19.90")."""
    cents = to_cents(amount)
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


# ============================================================================
# Totals Derivation
# ============================================================================

def _positive_cents(entry: AllowanceCharge) -> int:
    cents = to_cents(entry.amount)
    return cents if cents > 0 else 0


def compute_totals(
    line_items: Iterable[LineItem],
    allowance_charges: Optional[Iterable[AllowanceCharge]] = None,
    prepaid_amount: Optional[float] = None,
) -> DocumentTotals:
    """
    Derive subtotal, tax, total and amount due from line items and
    document-level allowances/charges.

    The tax basis is the sum of NET line amounts, minus allowances, plus
    charges. Tax is rounded per component (each line, each allowance, each
    charge) and only then summed, as the EN 16931 VAT breakdown requires;
    this differs from applying one rate to the aggregate basis. The amount
    due is the total less any prepaid amount (BR-CO-16).

    Missing or invalid amounts and rates count as 0, and amounts <= 0 on
    allowances/charges are ignored. The function is total and pure: the same
    input always produces the same output.

    Args:
        line_items: Invoice lines; ``total_price`` is taken as the NET amount
        allowance_charges: Document-level allowances and charges
        prepaid_amount: Amount already paid (BT-113)

    Returns:
        DocumentTotals with 2-decimal subtotal, tax_amount, total_amount
        and amount_due
    """
    line_net_cents = 0
    line_tax_cents = 0
    for item in line_items:
        cents = to_cents(item.total_price)
        line_net_cents += cents
        line_tax_cents += tax_cents(cents, item.tax_rate)

    allowance_cents = charge_cents = 0
    allowance_tax_cents = charge_tax_cents = 0
    for entry in allowance_charges or ():
        cents = _positive_cents(entry)
        if not cents:
            continue
        if entry.charge_indicator:
            charge_cents += cents
            charge_tax_cents += tax_cents(cents, entry.tax_rate)
        else:
            allowance_cents += cents
            allowance_tax_cents += tax_cents(cents, entry.tax_rate)

    tax_basis_cents = line_net_cents - allowance_cents + charge_cents
    total_tax_cents = line_tax_cents - allowance_tax_cents + charge_tax_cents
    total_cents = tax_basis_cents + total_tax_cents

    # Derived sums may exceed the per-amount input bound, so skip re-parsing
    return DocumentTotals.model_construct(
        subtotal=from_cents(tax_basis_cents),
        tax_amount=from_cents(total_tax_cents),
        total_amount=from_cents(total_cents),
        amount_due=from_cents(total_cents - to_cents(prepaid_amount)),
    )


def with_recomputed_totals(invoice: CanonicalInvoice) -> CanonicalInvoice:
    """Return a copy of the invoice whose totals are recomputed from its lines."""
    totals = compute_totals(invoice.line_items, invoice.allowance_charges, invoice.payment.prepaid_amount)
    return invoice.model_copy(update={"totals": totals})


def adjusted_line_sum_cents(invoice: CanonicalInvoice) -> int:
    """Sum of line NET amounts adjusted for document-level allowances/charges, in cents."""
    cents = sum(to_cents(item.total_price) for item in invoice.line_items)
    for entry in invoice.allowance_charges:
        amount = _positive_cents(entry)
        cents += amount if entry.charge_indicator else -amount
    return cents


def is_balanced(totals: DocumentTotals, tolerance: float = MONETARY_TOLERANCE) -> bool:
    """True if subtotal + tax_amount equals total_amount within tolerance."""
    return money_equal(add_money(totals.subtotal, totals.tax_amount), totals.total_amount, tolerance)


# ============================================================================
# Tax Breakdown
# ============================================================================

def derive_tax_category_code(rate: float) -> str:
    """EN 16931 tax category from a rate: S (standard) above 0, E (exempt) otherwise."""
    return "S" if rate > 0 else "E"


def group_by_tax_rate(
    line_items: Iterable[LineItem],
    allowance_charges: Optional[Iterable[AllowanceCharge]] = None,
) -> list[TaxBreakdown]:
    """
    Group taxable amounts by rate, one entry per distinct rate.

    Allowances and charges move the taxable amount of their own rate. Tax is
    rounded per component, as in compute_totals, so the breakdown sums to the
    computed tax amount. Entries are sorted by rate, highest first.
    """
    groups: dict[float, dict] = {}

    def bucket(rate: float, category: Optional[str]) -> dict:
        if rate not in groups:
            groups[rate] = {
                "taxable": 0,
                "tax": 0,
                "category": category or derive_tax_category_code(rate),
            }
        return groups[rate]

    for item in line_items:
        rate = item.tax_rate or 0.0
        cents = to_cents(item.total_price)
        group = bucket(rate, item.tax_category_code)
        group["taxable"] += cents
        group["tax"] += tax_cents(cents, rate)

    for entry in allowance_charges or ():
        cents = _positive_cents(entry)
        if not cents:
            continue
        rate = entry.tax_rate or 0.0
        sign = 1 if entry.charge_indicator else -1
        group = bucket(rate, entry.tax_category_code)
        group["taxable"] += sign * cents
        group["tax"] += sign * tax_cents(cents, rate)

    return [
        TaxBreakdown(
            tax_rate=rate,
            tax_category_code=group["category"],
            taxable_amount=from_cents(group["taxable"]),
            tax_amount=from_cents(group["tax"]),
        )
        for rate, group in sorted(groups.items(), key=lambda kv: kv[0], reverse=True)
    ]
