from __future__ import annotations

from rentmeter.core.calculations import FormValidationError

FIELD_LABELS = {
    "name": "Name",
    "base_rent": "Base rent",
    "contact": "Contact",
    "invoice_date": "Invoice date",
    "previous_month_reading": "Previous reading",
    "current_month_reading": "Current reading",
    "electricity_rate": "Electricity rate",
}

SAVE_FAILED_TEXT = "❌ Could not save. Please try again later."


def format_validation_error(error: FormValidationError) -> str:
    """
    Lists every offending field of a failed form, one per line.

    Args:
        error: The aggregated validation error.

    Returns:
        HTML text ready to send.
    """
    lines = ["⚠️ <b>Please fix these fields:</b>"]
    for field, message in error.messages().items():
        lines.append(f"• <b>{FIELD_LABELS.get(field, field)}:</b> {message}")
    return "\n".join(lines)


def format_warnings(warnings: list[str] | tuple[str, ...]) -> str:
    """Soft warnings as an italic block, or an empty string."""
    if not warnings:
        return ""
    return "\n".join(f"<i>⚠️ {w}</i>" for w in warnings)
