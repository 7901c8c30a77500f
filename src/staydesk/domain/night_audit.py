"""Night audit figures: revenue split, occupancy, ADR and RevPAR.

Revenue counts each non-voided item's total plus tax, on its service date:
room_charge is room revenue, food_beverage is F&B, and every other type
except the excluded ones below is "other".
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

EXCLUDED_FROM_REVENUE = frozenset({"tax", "service_charge", "discount", "deposit"})


class AuditAlreadyExistsError(Exception):
    """A completed audit already closes this business date."""

    def __init__(self, business_date: str):
        self.business_date = business_date
        super().__init__(f"Night audit for {business_date} has already been completed")


class AuditNotFoundError(Exception):
    def __init__(self, business_date: str):
        self.business_date = business_date
        super().__init__(f"No night audit in progress for {business_date}")


def revenue_by_category(lines: Iterable[tuple[str, int, int]]) -> dict[str, int]:
    """Split (item_type, total_price, tax_amount) lines into room/F&B/other cents."""
    room = fb = other = 0
    for item_type, total_price, tax_amount in lines:
        amount = total_price + tax_amount
        if item_type == "room_charge":
            room += amount
        elif item_type == "food_beverage":
            fb += amount
        elif item_type not in EXCLUDED_FROM_REVENUE:
            other += amount
    return {
        "room_revenue_cents": room,
        "fb_revenue_cents": fb,
        "other_revenue_cents": other,
        "total_revenue_cents": room + fb + other,
    }


def _per(amount: int, count: int) -> int:
    if count <= 0:
        return 0
    return int((Decimal(amount) / Decimal(count)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def occupancy_rate(occupied: int, total: int) -> Decimal:
    """Occupied share of rooms as a percentage with two decimals."""
    if total <= 0:
        return Decimal("0.00")
    return (Decimal(occupied) * 100 / Decimal(total)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def audit_figures(
    *,
    total_rooms: int,
    occupied_rooms: int,
    room_revenue_cents: int,
    arrivals: int,
) -> dict[str, object]:
    return {
        "total_rooms": total_rooms,
        "occupied_rooms": occupied_rooms,
        "vacant_rooms": total_rooms - occupied_rooms,
        "occupancy_rate": occupancy_rate(occupied_rooms, total_rooms),
        "adr_cents": _per(room_revenue_cents, occupied_rooms),
        "revpar_cents": _per(room_revenue_cents, total_rooms),
        "stayovers": occupied_rooms - arrivals,
    }
