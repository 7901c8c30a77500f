"""Tests for domain error to HTTP status translation."""

from __future__ import annotations

import pytest
from fastapi import HTTPException

from staydesk.api.errors import http_errors
from staydesk.domain.reservations import InvalidTransitionError
from staydesk.services.folio_service import FolioClosedError, FolioNotFoundError, LedgerValidationError
from staydesk.services.reservation_service import CheckInValidationError


@pytest.mark.parametrize(
    "error,status",
    [
        (FolioNotFoundError("folio-1"), 404),
        (FolioClosedError("folio-1"), 409),
        (InvalidTransitionError("check_in", "cancelled"), 409),
        (LedgerValidationError("Amount must be positive"), 422),
        (CheckInValidationError("1 room(s) still need to be assigned before check-in"), 422),
    ],
)
def test_domain_errors_mapped(error, status):
    with pytest.raises(HTTPException) as exc_info:
        with http_errors("add charge"):
            raise error
    assert exc_info.value.status_code == status
    assert exc_info.value.detail == str(error)


def test_unexpected_error_is_generic_500():
    with pytest.raises(HTTPException) as exc_info:
        with http_errors("close folio", folio_id="folio-1"):
            raise KeyError("secret internals")
    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Failed to close folio"


def test_http_exception_passes_through():
    with pytest.raises(HTTPException) as exc_info:
        with http_errors("close folio"):
            raise HTTPException(status_code=403, detail="Insufficient role")
    assert exc_info.value.status_code == 403


def test_no_error_no_effect():
    with http_errors("get folio"):
        value = 1
    assert value == 1
