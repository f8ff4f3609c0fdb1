from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "user" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "telegram_id" BIGINT NOT NULL UNIQUE,
    "name" VARCHAR(255) NOT NULL DEFAULT ''
);
COMMENT ON TABLE "user" IS 'An account owning tenants, invoices and settings.';
CREATE TABLE IF NOT EXISTS "settings" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "electricity_rate" DECIMAL(10,4) NOT NULL,
    "user_id" UUID NOT NULL UNIQUE REFERENCES "user" ("id") ON DELETE CASCADE
);
COMMENT ON TABLE "settings" IS 'Per-user preferences, created on first save.';
CREATE TABLE IF NOT EXISTS "tenant" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "name" VARCHAR(255) NOT NULL,
    "base_rent" DECIMAL(12,2) NOT NULL,
    "contact" VARCHAR(255),
    "user_id" UUID NOT NULL REFERENCES "user" ("id") ON DELETE CASCADE
);
COMMENT ON TABLE "tenant" IS 'Represents a tenant who rents a property.';
CREATE TABLE IF NOT EXISTS "invoice" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "tenant_name" VARCHAR(255) NOT NULL,
    "date" DATE NOT NULL,
    "base_rent" DECIMAL(12,2) NOT NULL,
    "previous_month_reading" DECIMAL(12,2) NOT NULL,
    "current_month_reading" DECIMAL(12,2) NOT NULL,
    "units_consumed" DECIMAL(12,2) NOT NULL,
    "electricity_rate" DECIMAL(10,4),
    "electricity_cost" DECIMAL(22,6) NOT NULL,
    "total" DECIMAL(22,6) NOT NULL,
    "tenant_id" UUID REFERENCES "tenant" ("id") ON DELETE SET NULL,
    "user_id" UUID NOT NULL REFERENCES "user" ("id") ON DELETE CASCADE
);
COMMENT ON COLUMN "invoice"."electricity_rate" IS 'Rate in effect when the invoice was generated';
COMMENT ON TABLE "invoice" IS 'A rent bill for one tenant.';
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        DROP TABLE IF EXISTS "invoice";
DROP TABLE IF EXISTS "tenant";
DROP TABLE IF EXISTS "settings";
DROP TABLE IF EXISTS "user";"""
