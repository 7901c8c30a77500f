"""Tests for night_audit_service: start, room charge posting, completion."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from helpers import folio_row
from staydesk.domain.night_audit import AuditAlreadyExistsError, AuditNotFoundError
from staydesk.infra.repositories import folio_repository
from staydesk.services import night_audit_service

BUSINESS_DATE = date(2026, 3, 10)


@pytest.fixture
def cur():
    return MagicMock()


@pytest.fixture
def deps():
    base = "staydesk.services.night_audit_service"
    with patch(f"{base}.night_audit_repository") as audits, \
         patch(f"{base}.reservations_repository") as reservations, \
         patch(f"{base}.rooms_repository") as rooms, \
         patch(f"{base}.folio_repository") as folios, \
         patch(f"{base}.folio_service") as folio_svc:
        yield SimpleNamespace(
            audits=audits,
            reservations=reservations,
            rooms=rooms,
            folios=folios,
            folio_service=folio_svc,
        )


class TestStartAudit:
    def test_creates_new(self, cur, deps):
        deps.audits.lock_audit.return_value = None
        deps.audits.insert_audit.return_value = {"id": "a1", "status": "in_progress"}

        result = night_audit_service.start_audit(
            cur, property_id="prop-1", business_date=BUSINESS_DATE, run_by="u1"
        )

        assert result["status"] == "in_progress"
        deps.audits.insert_audit.assert_called_once_with(
            cur, property_id="prop-1", business_date=BUSINESS_DATE, run_by="u1"
        )

    def test_completed_date_rejected(self, cur, deps):
        deps.audits.lock_audit.return_value = {"id": "a1", "status": "completed"}

        with pytest.raises(AuditAlreadyExistsError):
            night_audit_service.start_audit(cur, property_id="prop-1", business_date=BUSINESS_DATE)
        deps.audits.insert_audit.assert_not_called()

    def test_in_progress_restarted(self, cur, deps):
        deps.audits.lock_audit.return_value = {"id": "a1", "status": "in_progress"}

        night_audit_service.start_audit(
            cur, property_id="prop-1", business_date=BUSINESS_DATE, run_by="u2"
        )

        deps.audits.restart_audit.assert_called_once_with(cur, audit_id="a1", run_by="u2")


class TestPostRoomCharges:
    def test_posts_one_charge_per_room_and_skips_posted(self, cur, deps, policy):
        deps.reservations.list_checked_in_with_rooms.return_value = [
            {
                "id": "res-1",
                "guest_id": "guest-1",
                "rooms": [
                    {"reservation_room_id": "rr-1", "rate_per_night_cents": 10000, "room_number": "101"},
                    {"reservation_room_id": "rr-2", "rate_per_night_cents": 8000, "room_number": None},
                    {"reservation_room_id": "rr-3", "rate_per_night_cents": 9000, "room_number": "103"},
                ],
            }
        ]
        deps.folios.lock_folio_for_reservation.return_value = folio_row()
        deps.folios.room_charge_posted.side_effect = lambda cur, *, property_id, reference_id, service_date: (
            reference_id == "rr-3"
        )
        deps.folios.totals_of.side_effect = folio_repository.totals_of
        deps.folio_service.add_charge.side_effect = [
            folio_row(subtotal=10000, tax=1000, service=500),
            folio_row(subtotal=18000, tax=1800, service=900),
        ]

        result = night_audit_service.post_room_charges(cur, policy, business_date=BUSINESS_DATE)

        assert result == {"charges_posted": 2, "total_revenue_cents": 19800}
        descriptions = [c.kwargs["description"] for c in deps.folio_service.add_charge.call_args_list]
        assert descriptions == [
            "Room 101 - Night of 2026-03-10",
            "Room Unknown - Night of 2026-03-10",
        ]
        first = deps.folio_service.add_charge.call_args_list[0].kwargs
        assert first["item_type"] == "room_charge"
        assert first["reference_type"] == "reservation_room"
        assert first["service_date"] == BUSINESS_DATE

    def test_creates_folio_when_missing(self, cur, deps, policy):
        deps.reservations.list_checked_in_with_rooms.return_value = [
            {
                "id": "res-1",
                "guest_id": "guest-1",
                "rooms": [
                    {"reservation_room_id": "rr-1", "rate_per_night_cents": 10000, "room_number": "101"},
                ],
            }
        ]
        deps.folios.room_charge_posted.return_value = False
        deps.folios.lock_folio_for_reservation.return_value = None
        deps.folio_service.create_folio.return_value = folio_row("folio-new")
        deps.folios.totals_of.side_effect = folio_repository.totals_of
        deps.folio_service.add_charge.return_value = folio_row(
            "folio-new", subtotal=10000, tax=1000, service=500
        )

        night_audit_service.post_room_charges(cur, policy, business_date=BUSINESS_DATE)

        deps.folio_service.create_folio.assert_called_once_with(
            cur, policy, guest_id="guest-1", reservation_id="res-1"
        )
        assert deps.folio_service.add_charge.call_args.kwargs["folio_id"] == "folio-new"

    def test_night_posted_on_another_folio_is_not_reposted(self, cur, deps, policy):
        # The charge was split onto a second folio and the primary one is closed.
        deps.reservations.list_checked_in_with_rooms.return_value = [
            {
                "id": "res-1",
                "guest_id": "guest-1",
                "rooms": [
                    {"reservation_room_id": "rr-1", "rate_per_night_cents": 10000, "room_number": "101"},
                ],
            }
        ]
        deps.folios.room_charge_posted.return_value = True
        deps.folios.lock_folio_for_reservation.return_value = None

        result = night_audit_service.post_room_charges(cur, policy, business_date=BUSINESS_DATE)

        assert result == {"charges_posted": 0, "total_revenue_cents": 0}
        deps.folios.room_charge_posted.assert_called_once_with(
            cur, property_id="prop-1", reference_id="rr-1", service_date=BUSINESS_DATE
        )
        deps.folio_service.create_folio.assert_not_called()
        deps.folio_service.add_charge.assert_not_called()


class TestStatsAndComplete:
    def _setup(self, deps):
        deps.rooms.room_status_counts.return_value = (10, 4)
        deps.reservations.count_by_date_and_status.side_effect = lambda cur, **kw: {
            ("check_in_date", "checked_in"): 1,
            ("check_out_date", "checked_out"): 2,
            ("check_in_date", "no_show"): 0,
        }[(kw["date_column"], kw["status"])]
        deps.audits.revenue_lines.return_value = [
            ("room_charge", 36000, 3600),
            ("food_beverage", 5000, 500),
        ]
        deps.audits.payments_total.return_value = 20000

    def test_stats(self, cur, deps):
        self._setup(deps)

        stats = night_audit_service.get_audit_stats(
            cur, property_id="prop-1", business_date=BUSINESS_DATE
        )

        assert stats["occupancy_rate"] == Decimal("40.00")
        assert stats["room_revenue_cents"] == 39600
        assert stats["fb_revenue_cents"] == 5500
        assert stats["adr_cents"] == 9900
        assert stats["revpar_cents"] == 3960
        assert stats["arrivals_today"] == 1
        assert stats["departures_today"] == 2
        assert stats["stayovers"] == 3
        assert stats["total_payments_cents"] == 20000

    def test_complete_snapshots_stats(self, cur, deps):
        self._setup(deps)
        deps.audits.lock_audit.return_value = {"id": "a1", "status": "in_progress"}
        deps.audits.complete_audit.return_value = {"id": "a1", "status": "completed"}

        result = night_audit_service.complete_audit(
            cur, property_id="prop-1", business_date=BUSINESS_DATE, notes="All good"
        )

        assert result["status"] == "completed"
        kwargs = deps.audits.complete_audit.call_args.kwargs
        assert kwargs["audit_id"] == "a1"
        assert kwargs["notes"] == "All good"
        assert kwargs["stats"]["occupied_rooms"] == 4

    def test_complete_without_audit(self, cur, deps):
        deps.audits.lock_audit.return_value = None

        with pytest.raises(AuditNotFoundError):
            night_audit_service.complete_audit(
                cur, property_id="prop-1", business_date=BUSINESS_DATE
            )
