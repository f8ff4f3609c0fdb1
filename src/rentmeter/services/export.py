"""Service for exporting invoices to printable formats."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from rentmeter.core.display import format_date, format_money, format_units
from rentmeter.core.models import Invoice


class ExportService:
    """Handles exporting invoice data to files."""

    def __init__(self):
        template_dir = Path(__file__).parent.parent / "templates"
        self._env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
        )
        self._env.filters["money"] = format_money
        self._env.filters["units"] = format_units
        self._env.filters["human_date"] = format_date

    def render_invoice_html(self, invoice: Invoice, contact: str | None = None) -> str:
        """Renders the printable invoice page."""
        template = self._env.get_template("invoice.html")
        return template.render(
            invoice=invoice,
            rate=invoice.effective_electricity_rate,
            contact=contact,
        )

    async def generate_pdf_invoice(
        self, invoice: Invoice, output_path: Path | str
    ) -> Path:
        """
        Generates a PDF invoice.

        Args:
            invoice: The invoice to print.
            output_path: The path where the PDF file will be saved.

        Returns:
            The path to the generated PDF file.
        """
        from weasyprint import HTML

        await invoice.fetch_related("tenant")
        contact = invoice.tenant.contact if invoice.tenant else None
        rendered_html = self.render_invoice_html(invoice, contact=contact)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        HTML(string=rendered_html).write_pdf(output_path)

        return output_path
