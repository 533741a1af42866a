"""
Exceptions raised by the E-Invoice Compliance Service.

The compliance engine itself never raises on invoice data: incomplete or
inconsistent invoices produce validation errors instead. These exceptions
cover lookups made by callers, such as asking for the metadata of an output
format that does not exist.
"""


class EInvoiceQCError(Exception):
    """Base class for all service errors."""


class UnknownFormatError(EInvoiceQCError, KeyError):
    """Raised when an output format id has no registry entry."""

    def __init__(self, format_id: str):
        self.format_id = format_id
        super().__init__(f"Unknown output format: {format_id}")

    def __str__(self) -> str:
        return self.args[0]
