"""
FastAPI application for the E-Invoice Compliance Service.

Provides REST API endpoints for:
- Health check
- Output format metadata and per-format field configuration
- Totals derivation from line items and allowances/charges
- Single and batch invoice certification
"""

from typing import Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import logger, API_HOST, API_PORT, RuleCategory
from .exceptions import UnknownFormatError
from .monetary import compute_totals, group_by_tax_rate
from .profiles import get_all_formats, get_field_config, get_format_metadata
from .schemas import (
    BatchReport,
    CanonicalInvoice,
    ComplianceReport,
    FormatFieldConfig,
    FormatMetadata,
    TotalsRequest,
    TotalsResponse,
    ValidateBatchRequest,
)
from .validator import certify_invoice, create_batch_report


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="E-Invoice Compliance Service API",
    description="""
    E-Invoice Compliance & Monetary Derivation API.

    Certifies AI-extracted invoice data against the field and business
    rules of e-invoicing output formats before a document is generated.

    ## Features

    - **Totals**: Derive exact subtotal, tax and total from lines and allowances/charges
    - **Validate**: Certify an invoice for one output format
    - **Batch**: Certify several invoices in a single request
    - **Formats**: Inspect which fields each format requires, allows or hides
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for the review front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class FormatDetailResponse(BaseModel):
    """Metadata and field configuration of one output format."""
    metadata: FormatMetadata
    field_config: FormatFieldConfig


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and version information.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.get("/formats", response_model=list[FormatMetadata], tags=["Formats"])
async def list_formats() -> list[FormatMetadata]:
    """List all supported output formats."""
    return get_all_formats()


@app.get("/formats/{format_id}", response_model=FormatDetailResponse, tags=["Formats"])
async def get_format(format_id: str) -> FormatDetailResponse:
    """
    Get metadata and field configuration for one output format.

    The field configuration tells the review surface which inputs to show
    as required, optional or hidden.
    """
    metadata = get_format_metadata(format_id)
    return FormatDetailResponse(metadata=metadata, field_config=get_field_config(format_id))


@app.post(
    "/totals",
    response_model=TotalsResponse,
    response_model_by_alias=False,
    tags=["Monetary"],
    summary="Derive invoice totals",
)
async def derive_totals(request: TotalsRequest) -> TotalsResponse:
    """
    Compute subtotal, tax amount, total and amount due from line items,
    document-level allowances/charges and the prepaid amount, with the
    per-rate tax breakdown.
    """
    return TotalsResponse(
        totals=compute_totals(request.line_items, request.allowance_charges, request.prepaid_amount),
        tax_breakdown=group_by_tax_rate(request.line_items, request.allowance_charges),
    )


@app.post(
    "/validate",
    response_model=ComplianceReport,
    response_model_by_alias=False,
    tags=["Validation"],
    summary="Certify an invoice for an output format",
)
async def validate_invoice(
    invoice: CanonicalInvoice,
    output_format: Optional[str] = Query(None, description="Output format id"),
    recompute: bool = Query(True, description="Recompute totals before evaluating"),
) -> ComplianceReport:
    """
    Certify one invoice.

    Totals are recomputed from the line items first (unless disabled), then
    every rule of the chosen format is evaluated. Document generation should
    only proceed when ``summary.is_ready`` is true.

    Unknown format ids are evaluated against the universal rule subset.
    """
    logger.info(f"Received certification request for invoice {invoice.invoice_number}")
    return certify_invoice(invoice, output_format, recompute=recompute)


@app.post(
    "/validate-batch",
    response_model=BatchReport,
    response_model_by_alias=False,
    tags=["Validation"],
    summary="Certify a batch of invoices",
)
async def validate_invoice_batch(request: ValidateBatchRequest) -> BatchReport:
    """Certify several invoices and return per-invoice reports with a summary."""
    logger.info(f"Received batch certification request for {len(request.invoices)} invoices")
    return create_batch_report(request.invoices, request.output_format)


@app.get("/rules", tags=["System"])
async def list_rules():
    """
    List all business rules applied by the service, organized by category.
    """
    from .rules import VALIDATION_RULES, get_rules_by_category

    rules_by_category = {}
    for category in RuleCategory:
        category_rules = get_rules_by_category(category)
        if category_rules:
            rules_by_category[category.value] = [
                {"code": rule.code, "description": rule.description}
                for rule in category_rules
            ]

    return {
        "total_rules": len(VALIDATION_RULES),
        "rules_by_category": rules_by_category,
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(UnknownFormatError)
async def unknown_format_handler(request, exc: UnknownFormatError):
    """Map unknown format lookups to 404."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"E-Invoice Compliance API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("E-Invoice Compliance API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
