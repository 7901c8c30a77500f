"""Shared test helper functions for Staydesk tests.

Plain functions (not fixtures) importable by any test module.
"""

from __future__ import annotations

import base64
import time
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

OIDC_ENV = {
    "OIDC_ISSUER": "https://auth.example.com",
    "OIDC_AUDIENCE": "staydesk-api",
    "OIDC_JWKS_URL": "https://auth.example.com/.well-known/jwks.json",
}


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://auth.example.com",
    aud: str = "staydesk-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def folio_row(
    folio_id: str = "folio-1",
    *,
    status: str = "open",
    subtotal: int = 0,
    tax: int = 0,
    service: int = 0,
    paid: int = 0,
    total: int | None = None,
    guest_id: str | None = "guest-1",
    reservation_id: str | None = "res-1",
) -> dict[str, Any]:
    """Folio dict as returned by folio_repository lookups."""
    total = subtotal + tax + service if total is None else total
    return {
        "id": folio_id,
        "folio_number": f"F-HTL-{folio_id}",
        "property_id": "prop-1",
        "guest_id": guest_id,
        "reservation_id": reservation_id,
        "status": status,
        "subtotal_cents": subtotal,
        "tax_amount_cents": tax,
        "service_charge_cents": service,
        "total_amount_cents": total,
        "paid_amount_cents": paid,
        "balance_cents": total - paid,
        "closed_at": None,
        "closed_by": None,
        "created_at": "2026-01-01T00:00:00+00:00",
    }


def item_row(
    item_id: str = "item-1",
    *,
    folio_id: str = "folio-1",
    total_price: int = 1000,
    tax: int = 100,
    voided: bool = False,
    item_type: str = "food_beverage",
) -> dict[str, Any]:
    """Folio item dict as returned by folio_repository lookups."""
    return {
        "id": item_id,
        "folio_id": folio_id,
        "item_type": item_type,
        "description": "Dinner",
        "quantity": 1,
        "unit_price_cents": total_price,
        "total_price_cents": total_price,
        "tax_amount_cents": tax,
        "service_date": "2026-01-01",
        "reference_id": None,
        "voided": voided,
        "voided_at": None,
        "voided_by": None,
        "void_reason": None,
        "created_at": "2026-01-01T00:00:00+00:00",
    }
