"""Folio ledger arithmetic. Pure computation, no I/O.

All amounts are integer cents. Rates are Decimal percentages (10 means 10%).
Every percentage-derived amount goes through percent_of(), so the same
(amount, rate) pair always produces the same cents and a reversal at an
unchanged rate cancels the original contribution exactly.

Aggregate rules:
- Charge operations recompute total = subtotal + tax + service_charge.
- Payment operations keep the stored total and move paid_amount only.
- balance is always total - paid; it is never clamped (overpayment and
  discounts may drive subtotal or balance negative).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

_HUNDRED = Decimal(100)
_CENT = Decimal(1)


def percent_of(amount_cents: int, rate: Decimal) -> int:
    """Return rate% of amount_cents, rounded half-up to whole cents.

    Rounds away from zero on ties for negative amounts too, so
    percent_of(-x, r) == -percent_of(x, r).
    """
    raw = Decimal(amount_cents) * Decimal(rate) / _HUNDRED
    return int(raw.quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ChargeContribution:
    """What one charge adds to (or removes from) a folio's aggregates."""

    total_price: int
    tax_amount: int
    service_charge: int

    @property
    def gross(self) -> int:
        return self.total_price + self.tax_amount + self.service_charge


def price_charge(
    quantity: int,
    unit_price_cents: int,
    *,
    tax_rate: Decimal,
    service_charge_rate: Decimal,
) -> ChargeContribution:
    """Price a new charge line at the property's current rates."""
    total_price = quantity * unit_price_cents
    return ChargeContribution(
        total_price=total_price,
        tax_amount=percent_of(total_price, tax_rate),
        service_charge=percent_of(total_price, service_charge_rate),
    )


def posted_contribution(
    total_price: int,
    tax_amount: int,
    *,
    service_charge_rate: Decimal,
) -> ChargeContribution:
    """Contribution of an already-posted item, for void and transfer.

    Items store their total and tax but not their service charge; the
    service charge is recomputed at the rate in effect now.
    """
    return ChargeContribution(
        total_price=total_price,
        tax_amount=tax_amount,
        service_charge=percent_of(total_price, service_charge_rate),
    )


def split_contribution(
    items: Iterable[tuple[int, int]],
    *,
    service_charge_rate: Decimal,
) -> ChargeContribution:
    """Aggregate contribution of items moved by a split.

    Args:
        items: (total_price, tax_amount) pairs of the selected items.
        service_charge_rate: Current rate; applied once to the summed
            subtotal, not per item.
    """
    subtotal = 0
    tax = 0
    for total_price, tax_amount in items:
        subtotal += total_price
        tax += tax_amount
    return ChargeContribution(
        total_price=subtotal,
        tax_amount=tax,
        service_charge=percent_of(subtotal, service_charge_rate),
    )


@dataclass(frozen=True)
class FolioTotals:
    """Cached aggregate columns of one folio."""

    subtotal: int = 0
    tax_amount: int = 0
    service_charge: int = 0
    total_amount: int = 0
    paid_amount: int = 0

    @property
    def balance(self) -> int:
        return self.total_amount - self.paid_amount

    @classmethod
    def opening(cls, contribution: ChargeContribution) -> FolioTotals:
        """Totals of a brand-new folio seeded with one contribution."""
        return cls().add(contribution)

    def _recomputed(self, subtotal: int, tax_amount: int, service_charge: int) -> FolioTotals:
        return replace(
            self,
            subtotal=subtotal,
            tax_amount=tax_amount,
            service_charge=service_charge,
            total_amount=subtotal + tax_amount + service_charge,
        )

    def add(self, contribution: ChargeContribution) -> FolioTotals:
        return self._recomputed(
            self.subtotal + contribution.total_price,
            self.tax_amount + contribution.tax_amount,
            self.service_charge + contribution.service_charge,
        )

    def remove(self, contribution: ChargeContribution) -> FolioTotals:
        return self._recomputed(
            self.subtotal - contribution.total_price,
            self.tax_amount - contribution.tax_amount,
            self.service_charge - contribution.service_charge,
        )

    def add_adjustment(self, amount_cents: int) -> FolioTotals:
        """Post a discount (negative) or miscellaneous (positive) amount.

        Tax and service charge are deliberately left untouched.
        """
        return self._recomputed(
            self.subtotal + amount_cents,
            self.tax_amount,
            self.service_charge,
        )

    def apply_payment(self, amount_cents: int) -> FolioTotals:
        return replace(self, paid_amount=self.paid_amount + amount_cents)

    def reverse_payment(self, amount_cents: int) -> FolioTotals:
        return replace(self, paid_amount=self.paid_amount - amount_cents)

    def with_total(self, total_amount: int) -> FolioTotals:
        """Overwrite the total outright (stay extension)."""
        return replace(self, total_amount=total_amount)
