"""Tests for reservation transitions and stay pricing (pure)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from staydesk.domain.reservations import (
    ALLOWED_FROM,
    InvalidTransitionError,
    booking_total_cents,
    reprice_stay,
    require_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "operation,status",
        [
            ("check_in", "confirmed"),
            ("check_out", "checked_in"),
            ("cancel", "confirmed"),
            ("delete", "confirmed"),
            ("delete", "cancelled"),
            ("extend_stay", "checked_in"),
            ("move_room", "confirmed"),
        ],
    )
    def test_allowed(self, operation, status):
        require_transition(operation, status)

    @pytest.mark.parametrize(
        "operation,status",
        [
            ("check_in", "checked_in"),
            ("check_in", "cancelled"),
            ("check_out", "confirmed"),
            ("cancel", "checked_in"),
            ("delete", "checked_in"),
            ("delete", "checked_out"),
            ("extend_stay", "checked_out"),
        ],
    )
    def test_rejected(self, operation, status):
        with pytest.raises(InvalidTransitionError) as exc_info:
            require_transition(operation, status)
        assert exc_info.value.status == status
        assert exc_info.value.operation == operation

    def test_no_show_is_terminal(self):
        assert all("no_show" not in allowed for allowed in ALLOWED_FROM.values())

    def test_message_is_readable(self):
        with pytest.raises(InvalidTransitionError, match="Cannot check out a reservation with status 'confirmed'"):
            require_transition("check_out", "confirmed")


class TestRepriceStay:
    def test_extension_at_average_rate(self):
        # 3 nights for 30000 -> 10000/night; 5 nights -> +20000
        result = reprice_stay(
            30000,
            check_in=date(2026, 3, 1),
            check_out=date(2026, 3, 4),
            new_check_in=date(2026, 3, 1),
            new_check_out=date(2026, 3, 6),
        )
        assert result.original_nights == 3
        assert result.new_nights == 5
        assert result.nights_difference == 2
        assert result.cost_difference_cents == 20000
        assert result.new_total_cents == 50000

    def test_shortening_reduces_total(self):
        result = reprice_stay(
            30000,
            check_in=date(2026, 3, 1),
            check_out=date(2026, 3, 4),
            new_check_in=date(2026, 3, 2),
            new_check_out=date(2026, 3, 4),
        )
        assert result.cost_difference_cents == -10000
        assert result.new_total_cents == 20000

    def test_rounds_half_up(self):
        # 10001 / 2 = 5000.5 per night, one extra night -> 5001
        result = reprice_stay(
            10001,
            check_in=date(2026, 3, 1),
            check_out=date(2026, 3, 3),
            new_check_in=date(2026, 3, 1),
            new_check_out=date(2026, 3, 4),
        )
        assert result.average_rate_cents == Decimal("5000.5")
        assert result.cost_difference_cents == 5001

    def test_zero_original_nights(self):
        result = reprice_stay(
            5000,
            check_in=date(2026, 3, 1),
            check_out=date(2026, 3, 1),
            new_check_in=date(2026, 3, 1),
            new_check_out=date(2026, 3, 3),
        )
        assert result.average_rate_cents == 0
        assert result.new_total_cents == 5000


class TestBookingTotal:
    def test_nights_times_rates(self):
        assert booking_total_cents([10000, 8000], nights=3) == 54000

    def test_discount(self):
        assert booking_total_cents([10000], nights=2, discount_cents=5000) == 15000

    def test_never_below_zero(self):
        assert booking_total_cents([1000], nights=1, discount_cents=5000) == 0
