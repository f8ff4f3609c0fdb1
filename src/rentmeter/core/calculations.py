"""Core business logic for invoice calculations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Union

DEFAULT_ELECTRICITY_RATE = Decimal("15")

BASE_RENT_SOFT_LIMIT = Decimal("1000000")
ELECTRICITY_RATE_SOFT_LIMIT = Decimal("1000")

# Scale and magnitude of the stored columns: readings and rent are
# DECIMAL(12,2), the rate is DECIMAL(10,4).
AMOUNT_PLACES = 2
RATE_PLACES = 4
AMOUNT_CEILING = Decimal("1E10")
RATE_CEILING = Decimal("1E6")

NumberInput = Union[Decimal, int, float, str, None]


class FieldError(Exception):
    """A problem with a single input field."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class MissingFieldError(FieldError):
    """A required input was not supplied."""

    def __init__(self, field: str):
        super().__init__(field, "This field is required.")


class InvalidValueError(FieldError):
    """A supplied value breaks a domain rule (sign, range, type)."""

    def __init__(self, field: str, message: str, rule: str):
        super().__init__(field, message)
        self.rule = rule


class InconsistentReadingError(FieldError):
    """The current reading is below an explicitly entered previous reading."""

    def __init__(self, previous: Decimal, current: Decimal):
        super().__init__(
            "current_month_reading",
            f"Current reading ({current}) is lower than the previous "
            f"reading ({previous}).",
        )
        self.previous = previous
        self.current = current


class FormValidationError(Exception):
    """Aggregates every field error found while validating a form."""

    def __init__(self, errors: dict[str, FieldError]):
        super().__init__("; ".join(str(e) for e in errors.values()))
        self.errors = errors

    def messages(self) -> dict[str, str]:
        """Field name to human-readable message."""
        return {field: err.message for field, err in self.errors.items()}


class InvoiceValidationError(FormValidationError):
    """Raised by :func:`compute_invoice` when its inputs are not usable."""


@dataclass(frozen=True)
class InvoiceComputation:
    """Normalized inputs and derived amounts for one invoice."""

    invoice_date: date
    base_rent: Decimal
    previous_month_reading: Decimal
    current_month_reading: Decimal
    electricity_rate: Decimal
    units_consumed: Decimal
    electricity_cost: Decimal
    total: Decimal
    warnings: tuple[str, ...] = ()


def _is_absent(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_decimal(field: str, value: NumberInput) -> Decimal:
    """
    Converts user or caller input to a finite Decimal.

    Raises:
        MissingFieldError: if the value is absent.
        InvalidValueError: if the value is not a finite number.
    """
    if _is_absent(value):
        raise MissingFieldError(field)
    if isinstance(value, bool):
        raise InvalidValueError(field, "Enter a number.", rule="numeric")
    try:
        if isinstance(value, float):
            number = Decimal(str(value))
        elif isinstance(value, str):
            number = Decimal(value.strip())
        else:
            number = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidValueError(field, "Enter a number.", rule="numeric") from None

    if not number.is_finite():
        raise InvalidValueError(field, "Enter a finite number.", rule="finite")
    return number


def _within_scale(
    field: str, number: Decimal, places: int, ceiling: Decimal
) -> Decimal:
    """Rejects values the store could not keep exactly."""
    if abs(number) >= ceiling:
        raise InvalidValueError(field, "The number is too large.", rule="max")
    if number.normalize().as_tuple().exponent < -places:
        raise InvalidValueError(
            field, f"Use at most {places} decimal places.", rule="precision"
        )
    return number


def _non_negative(
    field: str,
    value: NumberInput,
    places: int = AMOUNT_PLACES,
    ceiling: Decimal = AMOUNT_CEILING,
) -> Decimal:
    number = to_decimal(field, value)
    if number < 0:
        raise InvalidValueError(field, "Must not be negative.", rule="non_negative")
    return _within_scale(field, number, places, ceiling)


def _positive(
    field: str,
    value: NumberInput,
    places: int = AMOUNT_PLACES,
    ceiling: Decimal = AMOUNT_CEILING,
) -> Decimal:
    number = to_decimal(field, value)
    if number <= 0:
        raise InvalidValueError(
            field, "Must be a positive number.", rule="positive"
        )
    return _within_scale(field, number, places, ceiling)


def _positive_rate(field: str, value: NumberInput) -> Decimal:
    return _positive(field, value, places=RATE_PLACES, ceiling=RATE_CEILING)


def _to_date(field: str, value: date | datetime | None) -> date:
    if value is None:
        raise MissingFieldError(field)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidValueError(field, "Enter a valid date.", rule="date")


def calculate_consumption(
    current_reading: Decimal, previous_reading: Decimal
) -> Decimal:
    """
    Calculates the consumption between two meter readings.

    Returns 0 if the current reading is less than the previous one
    (e.g., meter reset).
    """
    if current_reading < previous_reading:
        return Decimal("0")
    return current_reading - previous_reading


def calculate_cost(consumption: Decimal, rate: Decimal) -> Decimal:
    """Calculates the monetary cost of consumption at a per-unit rate."""
    return consumption * rate


def compute_invoice(
    current_month_reading: NumberInput,
    base_rent: NumberInput,
    electricity_rate: NumberInput,
    invoice_date: date | datetime | None,
    previous_month_reading: NumberInput = None,
    previous_carried_over: bool = False,
    today: date | None = None,
) -> InvoiceComputation:
    """
    Validates invoice inputs and derives the billed amounts.

    Args:
        current_month_reading: Meter reading at invoice time.
        base_rent: Fixed rent for the period.
        electricity_rate: Price of one unit of electricity.
        invoice_date: Invoice date; datetimes are truncated to the day.
        previous_month_reading: Reading of the prior invoice. Absent means 0.
        previous_carried_over: True when ``previous_month_reading`` was taken
            from the tenant's last invoice rather than typed by the user. A
            carried-over reading higher than the current one yields zero
            consumption instead of an error.
        today: Reference date for the "not in the future" check.

    Returns:
        The computation with full-precision amounts.

    Raises:
        InvoiceValidationError: with every offending field.
    """
    errors: dict[str, FieldError] = {}
    warnings: list[str] = []
    values: dict[str, Decimal] = {}

    checks = (
        ("current_month_reading", current_month_reading, _non_negative),
        ("base_rent", base_rent, _positive),
        ("electricity_rate", electricity_rate, _positive_rate),
    )
    for field, raw, check in checks:
        try:
            values[field] = check(field, raw)
        except FieldError as e:
            errors[field] = e

    if _is_absent(previous_month_reading):
        values["previous_month_reading"] = Decimal("0")
    else:
        try:
            values["previous_month_reading"] = _non_negative(
                "previous_month_reading", previous_month_reading
            )
        except FieldError as e:
            errors["previous_month_reading"] = e

    parsed_date: date | None = None
    try:
        parsed_date = _to_date("invoice_date", invoice_date)
    except FieldError as e:
        errors["invoice_date"] = e

    if parsed_date is not None and parsed_date > (today or date.today()):
        errors["invoice_date"] = InvalidValueError(
            "invoice_date", "Invoice date cannot be in the future.", rule="not_future"
        )

    previous = values.get("previous_month_reading")
    current = values.get("current_month_reading")
    if (
        previous is not None
        and current is not None
        and not previous_carried_over
        and not _is_absent(previous_month_reading)
        and current < previous
    ):
        errors.setdefault(
            "current_month_reading", InconsistentReadingError(previous, current)
        )

    if errors or parsed_date is None:
        raise InvoiceValidationError(errors)

    if values["base_rent"] > BASE_RENT_SOFT_LIMIT:
        warnings.append("Base rent seems unusually high.")
    if values["electricity_rate"] > ELECTRICITY_RATE_SOFT_LIMIT:
        warnings.append("Electricity rate seems unusually high.")

    units = calculate_consumption(
        values["current_month_reading"], values["previous_month_reading"]
    )
    cost = calculate_cost(units, values["electricity_rate"])

    return InvoiceComputation(
        invoice_date=parsed_date,
        base_rent=values["base_rent"],
        previous_month_reading=values["previous_month_reading"],
        current_month_reading=values["current_month_reading"],
        electricity_rate=values["electricity_rate"],
        units_consumed=units,
        electricity_cost=cost,
        total=values["base_rent"] + cost,
        warnings=tuple(warnings),
    )


def validate_electricity_rate(value: NumberInput) -> tuple[Decimal, list[str]]:
    """
    Validates a rate entered on the settings screen.

    Returns:
        The rate and a list of soft warnings.

    Raises:
        FormValidationError: if the rate is missing or not positive.
    """
    try:
        rate = _positive_rate("electricity_rate", value)
    except FieldError as e:
        raise FormValidationError({"electricity_rate": e}) from None

    warnings = []
    if rate > ELECTRICITY_RATE_SOFT_LIMIT:
        warnings.append("Electricity rate seems unusually high.")
    return rate, warnings


def validate_tenant_fields(
    name: str | None, base_rent: NumberInput
) -> tuple[str, Decimal, list[str]]:
    """
    Validates the tenant form.

    Returns:
        The stripped name, the rent and a list of soft warnings.

    Raises:
        FormValidationError: with every offending field.
    """
    errors: dict[str, FieldError] = {}
    clean_name = (name or "").strip()
    if not clean_name:
        errors["name"] = MissingFieldError("name")

    rent = Decimal("0")
    try:
        rent = _positive("base_rent", base_rent)
    except FieldError as e:
        errors["base_rent"] = e

    if errors:
        raise FormValidationError(errors)

    warnings = []
    if rent > BASE_RENT_SOFT_LIMIT:
        warnings.append("Base rent seems unusually high.")
    return clean_name, rent, warnings
