"""Domain models for the rentmeter application."""

from __future__ import annotations

import uuid
from decimal import Decimal

from tortoise import fields, models

from rentmeter.core.calculations import DEFAULT_ELECTRICITY_RATE


class BaseModel(models.Model):
    """Abstract base model with common fields."""

    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True


class User(BaseModel):
    """An account owning tenants, invoices and settings."""

    telegram_id = fields.BigIntField(unique=True)
    name = fields.CharField(max_length=255, default="")

    tenants: fields.ReverseRelation[Tenant]
    invoices: fields.ReverseRelation[Invoice]
    settings: fields.BackwardOneToOneRelation[Settings]

    def __str__(self) -> str:
        return self.name or str(self.telegram_id)


class Tenant(BaseModel):
    """Represents a tenant who rents a property."""

    name = fields.CharField(max_length=255)
    base_rent = fields.DecimalField(max_digits=12, decimal_places=2)
    contact = fields.CharField(max_length=255, null=True)
    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="tenants", on_delete=fields.CASCADE
    )

    invoices: fields.ReverseRelation[Invoice]

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name


class Invoice(BaseModel):
    """
    A rent bill for one tenant.

    ``tenant_name``, ``base_rent`` and ``electricity_rate`` are copied in at
    creation time and never follow later edits to the tenant or settings.
    """

    user_id: uuid.UUID
    tenant_id: uuid.UUID | None

    user: fields.ForeignKeyRelation[User] = fields.ForeignKeyField(
        "models.User", related_name="invoices", on_delete=fields.CASCADE
    )
    tenant: fields.ForeignKeyNullableRelation[Tenant] = fields.ForeignKeyField(
        "models.Tenant",
        related_name="invoices",
        null=True,
        on_delete=fields.SET_NULL,
    )
    tenant_name = fields.CharField(max_length=255)
    date = fields.DateField()
    base_rent = fields.DecimalField(max_digits=12, decimal_places=2)
    previous_month_reading = fields.DecimalField(max_digits=12, decimal_places=2)
    current_month_reading = fields.DecimalField(max_digits=12, decimal_places=2)
    units_consumed = fields.DecimalField(max_digits=12, decimal_places=2)
    electricity_rate = fields.DecimalField(
        max_digits=10,
        decimal_places=4,
        null=True,
        description="Rate in effect when the invoice was generated",
    )
    electricity_cost = fields.DecimalField(max_digits=22, decimal_places=6)
    total = fields.DecimalField(max_digits=22, decimal_places=6)

    @property
    def effective_electricity_rate(self) -> Decimal:
        """Stored rate, or the default for records created before it existed."""
        if self.electricity_rate is None:
            return DEFAULT_ELECTRICITY_RATE
        return self.electricity_rate

    def __str__(self) -> str:
        return f"Invoice for {self.tenant_name} on {self.date}: {self.total}"


class Settings(BaseModel):
    """Per-user preferences, created on first save."""

    user_id: uuid.UUID

    electricity_rate = fields.DecimalField(max_digits=10, decimal_places=4)
    user: fields.OneToOneRelation[User] = fields.OneToOneField(
        "models.User", related_name="settings", on_delete=fields.CASCADE
    )

    def __str__(self) -> str:
        return f"Settings for {self.user_id}: rate {self.electricity_rate}"
