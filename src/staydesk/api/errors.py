"""Translate service-layer errors into HTTP responses.

Usage:
    with txn() as cur, http_errors("add charge", property_id=ctx.property_id):
        ...

Known domain errors become 404/409/422. Anything else is logged and
surfaced as a 500 with a generic detail. HTTPException passes through.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import HTTPException

from staydesk.domain.night_audit import AuditAlreadyExistsError, AuditNotFoundError
from staydesk.domain.reservations import InvalidTransitionError, ReservationNotFoundError
from staydesk.domain.room_conflict import RoomUnavailableError
from staydesk.infra.property_settings import PropertyNotFoundError
from staydesk.observability.logging import get_logger
from staydesk.observability.redaction import safe_log_context
from staydesk.services.folio_service import (
    AlreadyVoidedError,
    CorporateAccountNotFoundError,
    FolioClosedError,
    FolioItemNotFoundError,
    FolioNotFoundError,
    LedgerValidationError,
    PaymentNotFoundError,
)
from staydesk.services.housekeeping_service import InvalidTaskStatusError, TaskNotFoundError
from staydesk.services.reservation_service import ReservationValidationError

logger = get_logger(__name__)

_NOT_FOUND = (
    AuditNotFoundError,
    CorporateAccountNotFoundError,
    FolioItemNotFoundError,
    FolioNotFoundError,
    PaymentNotFoundError,
    PropertyNotFoundError,
    ReservationNotFoundError,
    TaskNotFoundError,
)

_CONFLICT = (
    AlreadyVoidedError,
    AuditAlreadyExistsError,
    FolioClosedError,
    InvalidTaskStatusError,
    InvalidTransitionError,
    RoomUnavailableError,
)

_UNPROCESSABLE = (
    LedgerValidationError,
    ReservationValidationError,
)


@contextmanager
def http_errors(action: str, **log_fields: Any) -> Iterator[None]:
    """Map domain exceptions raised inside the block to HTTPException."""
    try:
        yield
    except HTTPException:
        raise
    except _NOT_FOUND as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except _CONFLICT as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except _UNPROCESSABLE as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.error(
            f"{action} failed",
            exc_info=True,
            extra={"extra_fields": safe_log_context(error_type=type(exc).__name__, **log_fields)},
        )
        raise HTTPException(status_code=500, detail=f"Failed to {action}")
