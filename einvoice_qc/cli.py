"""
Command-line interface for the E-Invoice Compliance Service.

Provides the main commands:
- validate: Certify invoice JSON for an output format and write a report
- totals: Derive totals and tax breakdown from invoice JSON
- formats: List supported output formats
- fields: Show the field configuration of one format
"""

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as PayloadError

from .config import Obligation, logger
from .exceptions import UnknownFormatError
from .monetary import compute_totals, format_money, group_by_tax_rate
from .profiles import PRESENCE_FIELDS, get_all_formats, get_field_config, get_format_metadata
from .schemas import CanonicalInvoice
from .validator import create_batch_report, format_batch_summary_text, format_report_text


# Create Typer app
app = typer.Typer(
    name="einvoice-qc",
    help="E-Invoice Compliance & Monetary Derivation CLI",
    add_completion=False,
)


def load_invoices(input_file: Path) -> list[CanonicalInvoice]:
    """Read one invoice object or a list of them from a JSON file."""
    with open(input_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        data = [data]

    return [CanonicalInvoice.model_validate(entry) for entry in data]


@app.command()
def validate(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Input JSON file containing one invoice or a list of invoices",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format id (e.g. xrechnung-cii); defaults to each invoice's own or detected format",
    ),
    report: Path = typer.Option(
        "compliance_report.json",
        "--report",
        "-r",
        help="Output compliance report JSON file path",
    ),
    recompute: bool = typer.Option(
        True,
        "--recompute/--no-recompute",
        help="Recompute totals from line items before evaluating",
    ),
    fail_on_not_ready: bool = typer.Option(
        False,
        "--fail-on-not-ready",
        help="Exit with non-zero status if any invoice is not ready",
    ),
) -> None:
    """
    Certify invoices from a JSON file.

    Recomputes totals, runs the business rules of the chosen output format
    and writes a report with per-invoice verdicts and a batch summary.
    """
    typer.echo(f"Certifying invoices from: {input_file}")

    try:
        invoices = load_invoices(input_file)

        if not invoices:
            typer.echo("No invoices found in input file.", err=True)
            raise typer.Exit(code=1)

        batch_report = create_batch_report(invoices, output_format, recompute=recompute)

        with open(report, "w", encoding="utf-8") as f:
            json.dump(batch_report.model_dump(mode="json"), f, indent=2)

        for result in batch_report.per_invoice_results[:5]:  # Show first 5
            typer.echo("\n" + format_report_text(result))
        if len(batch_report.per_invoice_results) > 5:
            typer.echo(f"\n  ... and {len(batch_report.per_invoice_results) - 5} more invoices")

        typer.echo("\n" + format_batch_summary_text(batch_report.summary))
        typer.echo(f"\n[OK] Compliance report saved to: {report}")

        if fail_on_not_ready and batch_report.summary.not_ready_invoices > 0:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except PayloadError as e:
        typer.echo(f"Error: Input is not invoice-shaped: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during certification: {e}", err=True)
        logger.exception("Certification failed")
        raise typer.Exit(code=1)


@app.command()
def totals(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Input JSON file containing one invoice or a list of invoices",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """
    Derive subtotal, tax, total and amount due for each invoice in a JSON file.
    """
    try:
        invoices = load_invoices(input_file)
    except (json.JSONDecodeError, PayloadError) as e:
        typer.echo(f"Error: Could not read invoices: {e}", err=True)
        raise typer.Exit(code=1)

    for invoice in invoices:
        derived = compute_totals(invoice.line_items, invoice.allowance_charges, invoice.payment.prepaid_amount)
        typer.echo(f"{invoice.invoice_number or '<no invoice number>'}:")
        typer.echo(f"  Subtotal:     {format_money(derived.subtotal)}")
        typer.echo(f"  Tax amount:   {format_money(derived.tax_amount)}")
        typer.echo(f"  Total amount: {format_money(derived.total_amount)}")
        typer.echo(f"  Amount due:   {format_money(derived.amount_due)}")
        for group in group_by_tax_rate(invoice.line_items, invoice.allowance_charges):
            typer.echo(
                f"    {group.tax_category_code} {group.tax_rate:g}%: "
                f"{format_money(group.taxable_amount)} -> {format_money(group.tax_amount)}"
            )


@app.command()
def formats() -> None:
    """List supported output formats."""
    for meta in get_all_formats():
        typer.echo(f"{meta.id:<18} {meta.display_name:<22} {meta.syntax_type:<10} {', '.join(meta.countries[:6])}")


@app.command()
def fields(
    output_format: str = typer.Option(
        ...,
        "--format",
        "-f",
        help="Output format id",
    ),
) -> None:
    """Show which fields a format requires, allows or hides."""
    try:
        meta = get_format_metadata(output_format)
    except UnknownFormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    config = get_field_config(meta.id)
    typer.echo(f"{meta.display_name} ({meta.id})")
    for level in Obligation:
        names = [name for name in PRESENCE_FIELDS if config.fields[name] == level]
        typer.echo(f"\n{level.value.upper()} ({len(names)}):")
        for name in names:
            marker = " [warning]" if name in config.warning_fields else ""
            hint = config.hints.get(name)
            typer.echo(f"  - {name}{marker}" + (f": {hint}" if hint else ""))


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"E-Invoice Compliance Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
