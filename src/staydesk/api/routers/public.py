"""Front-desk routes (APP_ROLE=public)."""

from fastapi import APIRouter

from staydesk.api.routes import corporate, folios, housekeeping, night_audit, reservations

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(folios.router)
router.include_router(corporate.router)
router.include_router(reservations.router)
router.include_router(housekeeping.router)
router.include_router(night_audit.router)
