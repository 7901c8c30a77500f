"""Corporate account endpoints - settlement of guest folios."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from staydesk.api.errors import http_errors
from staydesk.api.rbac import PropertyRoleContext, require_property_role
from staydesk.domain.folio import CorporateBulkPaymentRequest
from staydesk.infra import property_settings
from staydesk.services import folio_service

router = APIRouter(prefix="/corporate-accounts", tags=["corporate"])


@router.get("/{account_id}/outstanding-folios")
def outstanding_folios(
    account_id: str = Path(..., description="Corporate account UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> list[dict]:
    """Open folios with a balance for guests linked to the account."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("list outstanding folios", property_id=ctx.property_id):
        return folio_service.list_outstanding_corporate_folios(
            cur, property_id=ctx.property_id, account_id=account_id
        )


@router.post("/{account_id}/payments")
def record_corporate_payment(
    body: CorporateBulkPaymentRequest,
    account_id: str = Path(..., description="Corporate account UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    """Settle several folios at once on behalf of the account. Requires manager."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "record corporate payment", property_id=ctx.property_id, corporate_account_id=account_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.record_corporate_bulk_payment(
            cur,
            policy,
            corporate_account_id=account_id,
            folio_payments=[(p.folio_id, p.amount_cents) for p in body.folio_payments],
            payment_method=body.payment_method.value,
            reference_number=body.reference_number,
            notes=body.notes,
            recorded_by=ctx.user.id,
        )
