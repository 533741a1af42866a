"""
Configuration constants and enums for the E-Invoice Compliance Service.
"""

import logging
import os
import re
from enum import Enum
from typing import Final

# ============================================================================
# Output Formats
# ============================================================================

class OutputFormat(str, Enum):
    """E-invoicing output profiles the engine can certify against."""
    XRECHNUNG_CII = "xrechnung-cii"
    XRECHNUNG_UBL = "xrechnung-ubl"
    PEPPOL_BIS = "peppol-bis"
    FACTURX_EN16931 = "facturx-en16931"
    FACTURX_BASIC = "facturx-basic"
    FATTURAPA = "fatturapa"
    KSEF = "ksef"
    NLCIUS = "nlcius"
    CIUS_RO = "cius-ro"


# Format used when nothing in the invoice data points elsewhere
DEFAULT_OUTPUT_FORMAT: Final[str] = OutputFormat.XRECHNUNG_CII.value


# ============================================================================
# Rule Severity & Field Obligation
# ============================================================================

class Severity(str, Enum):
    """Severity of a failed rule. Only errors block document generation."""
    ERROR = "error"
    WARNING = "warning"


class Obligation(str, Enum):
    """How a field behaves for a given output format."""
    REQUIRED = "required"
    OPTIONAL = "optional"
    HIDDEN = "hidden"


class RuleCategory(str, Enum):
    """Categories for business rules."""
    PRESENCE = "presence"
    STRUCTURAL = "structural"
    ARITHMETIC = "arithmetic"
    SEMANTIC = "semantic"


# ============================================================================
# Monetary Tolerances
# ============================================================================

# Absolute tolerance for cross-checks between totals (BR-CO-10/14/15)
MONETARY_TOLERANCE: Final[float] = float(os.getenv("MONETARY_TOLERANCE", "0.02"))

# Absolute tolerance for the NET/GROSS line item heuristic
SEMANTIC_TOLERANCE: Final[float] = float(os.getenv("SEMANTIC_TOLERANCE", "0.02"))

# Largest magnitude accepted for an extracted number. Anything above is an
# OCR digit run rather than an amount and is read as unparseable.
MAX_AMOUNT: Final[float] = float(os.getenv("MAX_AMOUNT", "1e12"))

# ============================================================================
# Structural Patterns
# ============================================================================

# ISO 8601 calendar date: 2024-01-15
DATE_PATTERN: Final[re.Pattern] = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
ISO_DATE_FORMAT: Final[str] = "%Y-%m-%d"

# IBAN structure: country code, check digits, 4-30 alphanumerics (BBAN)
IBAN_PATTERN: Final[re.Pattern] = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{4,30}$")

# Peppol participant identifier: "0088:1234567890123"
PEPPOL_PARTICIPANT_PATTERN: Final[re.Pattern] = re.compile(r"^[0-9]{4}:\S+$")

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("einvoice_qc")


logger = setup_logging()
