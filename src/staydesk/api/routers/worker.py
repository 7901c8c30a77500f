"""Batch routes (APP_ROLE=worker): health plus the nightly audit run."""

from fastapi import APIRouter

from staydesk.api.routes import night_audit

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(night_audit.router)
