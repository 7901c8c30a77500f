"""Reservation lifecycle: states, allowed transitions and stay pricing.

    confirmed ──check_in──▶ checked_in ──check_out──▶ checked_out
        │
        └──cancel──▶ cancelled

no_show is terminal and not reachable through any operation here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RoomStatus(str, Enum):
    VACANT = "vacant"
    OCCUPIED = "occupied"
    DIRTY = "dirty"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


# Statuses each operation may start from.
ALLOWED_FROM: dict[str, frozenset[str]] = {
    "check_in": frozenset({"confirmed"}),
    "check_out": frozenset({"checked_in"}),
    "cancel": frozenset({"confirmed"}),
    "delete": frozenset({"confirmed", "cancelled"}),
    "extend_stay": frozenset({"confirmed", "checked_in"}),
    "assign_rooms": frozenset({"confirmed", "checked_in"}),
    "move_room": frozenset({"confirmed", "checked_in"}),
}

# Statuses that hold a physical room for availability purposes.
ROOM_HOLDING_STATUSES = ("confirmed", "checked_in")


class ReservationNotFoundError(Exception):
    pass


class InvalidTransitionError(Exception):
    """Reservation status does not allow the requested operation."""

    def __init__(self, operation: str, status: str):
        self.operation = operation
        self.status = status
        super().__init__(f"Cannot {operation.replace('_', ' ')} a reservation with status '{status}'")


def require_transition(operation: str, status: str) -> None:
    """Raise InvalidTransitionError unless `operation` is allowed from `status`."""
    if status not in ALLOWED_FROM[operation]:
        raise InvalidTransitionError(operation, status)


def nights_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


@dataclass(frozen=True)
class StayRepricing:
    original_nights: int
    new_nights: int
    average_rate_cents: Decimal
    cost_difference_cents: int
    new_total_cents: int

    @property
    def nights_difference(self) -> int:
        return self.new_nights - self.original_nights


def reprice_stay(
    total_amount_cents: int,
    *,
    check_in: date,
    check_out: date,
    new_check_in: date,
    new_check_out: date,
) -> StayRepricing:
    """Reprice a stay proportionally at its average nightly rate.

    The average rate is total / original nights (0 when the original stay
    has no nights); the cost difference is rounded half-up to cents.
    """
    original_nights = nights_between(check_in, check_out)
    new_nights = nights_between(new_check_in, new_check_out)

    if original_nights > 0:
        average_rate = Decimal(total_amount_cents) / Decimal(original_nights)
    else:
        average_rate = Decimal(0)

    cost = (average_rate * (new_nights - original_nights)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return StayRepricing(
        original_nights=original_nights,
        new_nights=new_nights,
        average_rate_cents=average_rate,
        cost_difference_cents=int(cost),
        new_total_cents=total_amount_cents + int(cost),
    )


def booking_total_cents(
    rates_per_night_cents: list[int],
    *,
    nights: int,
    discount_cents: int = 0,
) -> int:
    """Total for a new booking: nights * rate per room, minus discount, floored at 0."""
    subtotal = sum(rate * nights for rate in rates_per_night_cents)
    return max(0, subtotal - discount_cents)


# ── Pydantic Schemas ─────────────────────────────────────


class ReservationRoomCreate(BaseModel):
    room_type_id: str
    room_id: str | None = None
    rate_per_night_cents: int = Field(..., ge=0)
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)


class ReservationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    guest_id: str
    check_in_date: date
    check_out_date: date
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    source: str = "walk_in"
    special_requests: str | None = None
    internal_notes: str | None = None
    discount_cents: int = Field(0, ge=0)
    rooms: list[ReservationRoomCreate] = Field(..., min_length=1)


class RoomAssignment(BaseModel):
    reservation_room_id: str
    room_id: str


class RoomAssignmentsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_assignments: list[RoomAssignment] = Field(default_factory=list)


class MoveRoomRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reservation_room_id: str
    new_room_id: str


class CheckOutRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    close_folio: bool = False


class ExtendStayRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    new_check_in_date: date
    new_check_out_date: date
