"""
E-Invoice Compliance Service

A Python service that derives exact invoice totals from line items and
allowances/charges, and certifies AI-extracted invoice data against the
field and business rules of e-invoicing output formats.
"""

__version__ = "0.1.0"
__author__ = "E-Invoice QC Team"

from .schemas import (
    AllowanceCharge,
    CanonicalInvoice,
    ComplianceReport,
    ComplianceSummary,
    DocumentTotals,
    LineItem,
    ValidationError,
)
from .monetary import compute_totals, with_recomputed_totals
from .profiles import FORMAT_FIELD_CONFIG, get_field_config
from .rules import evaluate, evaluate_checks
from .validator import certify_invoice, summarize, validate_batch

__all__ = [
    "AllowanceCharge",
    "CanonicalInvoice",
    "ComplianceReport",
    "ComplianceSummary",
    "DocumentTotals",
    "LineItem",
    "ValidationError",
    "compute_totals",
    "with_recomputed_totals",
    "FORMAT_FIELD_CONFIG",
    "get_field_config",
    "evaluate",
    "evaluate_checks",
    "certify_invoice",
    "summarize",
    "validate_batch",
]
