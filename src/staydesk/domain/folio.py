"""Folio domain: enums and request schemas for the guest billing ledger."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ─────────────────────────────────────────────────


class FolioStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class FolioItemType(str, Enum):
    ROOM_CHARGE = "room_charge"
    FOOD_BEVERAGE = "food_beverage"
    LAUNDRY = "laundry"
    MINIBAR = "minibar"
    SPA = "spa"
    PARKING = "parking"
    TELEPHONE = "telephone"
    INTERNET = "internet"
    MISCELLANEOUS = "miscellaneous"
    ADJUSTMENT = "adjustment"
    DISCOUNT = "discount"
    TAX = "tax"
    SERVICE_CHARGE = "service_charge"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_PAYMENT = "mobile_payment"
    CORPORATE_BILLING = "corporate_billing"
    OTHER = "other"


# ── Pydantic Schemas ─────────────────────────────────────


class ChargeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_type: FolioItemType
    description: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    unit_price_cents: int
    service_date: date | None = None


class PaymentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int = Field(..., gt=0, description="Amount in cents (must be > 0)")
    payment_method: PaymentMethod
    reference_number: str | None = None
    notes: str | None = None
    corporate_account_id: str | None = None


class AdjustmentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int
    reason: str = Field(..., min_length=1)
    is_discount: bool = False


class VoidRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(..., min_length=1)


class TransferRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_folio_id: str


class SplitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_ids: list[str] = Field(..., min_length=1)


class BulkPaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    folio_ids: list[str] = Field(..., min_length=1)
    total_amount_cents: int = Field(..., gt=0)
    payment_method: PaymentMethod
    reference_number: str | None = None
    notes: str | None = None


class CorporateFolioPayment(BaseModel):
    folio_id: str
    amount_cents: int = Field(..., gt=0)


class CorporateBulkPaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    folio_payments: list[CorporateFolioPayment] = Field(..., min_length=1)
    payment_method: PaymentMethod
    reference_number: str | None = None
    notes: str | None = None
