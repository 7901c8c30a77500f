"""OIDC JWT authentication.

Provides:
- verify_token(): Validates an RS256 JWT against the issuer's JWKS and
  returns the subject claim
- get_current_user(): FastAPI dependency resolving the staff user

Configuration (environment):
- OIDC_ISSUER, OIDC_AUDIENCE, OIDC_JWKS_URL (all required)
- OIDC_AUTHORIZED_PARTIES: optional comma-separated azp allow-list
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

# JWKS cache with TTL
_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()
_JWKS_CACHE_TTL = 600  # 10 minutes


@dataclass
class CurrentUser:
    """Authenticated staff user."""

    id: str
    external_subject: str
    email: str | None
    name: str | None


@dataclass(frozen=True)
class OidcSettings:
    issuer: str | None
    audience: str | None
    jwks_url: str | None
    authorized_parties: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return bool(self.issuer and self.audience and self.jwks_url)

    @classmethod
    def from_env(cls) -> OidcSettings:
        raw_parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
        return cls(
            issuer=os.environ.get("OIDC_ISSUER"),
            audience=os.environ.get("OIDC_AUDIENCE"),
            jwks_url=os.environ.get("OIDC_JWKS_URL"),
            authorized_parties=tuple(p.strip() for p in raw_parties.split(",") if p.strip()),
        )


def _invalid(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _get_jwks(jwks_url: str, force_refresh: bool = False) -> dict[str, Any]:
    """Get JWKS, served from cache for up to _JWKS_CACHE_TTL seconds."""
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        now = time.time()
        fresh = _jwks_cache is not None and (now - _jwks_cache_time) < _JWKS_CACHE_TTL
        if fresh and not force_refresh:
            return _jwks_cache

        try:
            _jwks_cache = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        _jwks_cache_time = now
        return _jwks_cache


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    return next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)


def _decode(token: str, jwk_data: dict[str, Any], settings: OidcSettings) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(jwk_data)
    except (ValueError, TypeError, KeyError):
        raise _invalid()

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=settings.issuer,
        audience=settings.audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> str:
    """Verify a JWT and return its subject claim.

    An unknown kid or a bad signature triggers one JWKS refresh (the
    issuer may have rotated keys) before the token is rejected.

    Raises:
        HTTPException: 401 if the token is invalid, 503 if JWKS is unreachable.
    """
    settings = OidcSettings.from_env()
    if not settings.configured:
        raise _invalid("OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise _invalid()
    if not kid:
        raise _invalid()

    key_data = _find_key(_get_jwks(settings.jwks_url), kid)
    if key_data is None:
        key_data = _find_key(_get_jwks(settings.jwks_url, force_refresh=True), kid)
    if key_data is None:
        raise _invalid()

    try:
        payload = _decode(token, key_data, settings)
    except jwt.InvalidSignatureError:
        key_data = _find_key(_get_jwks(settings.jwks_url, force_refresh=True), kid)
        if key_data is None:
            raise _invalid()
        try:
            payload = _decode(token, key_data, settings)
        except jwt.InvalidTokenError:
            raise _invalid()
    except jwt.ExpiredSignatureError:
        raise _invalid("Token expired")
    except jwt.InvalidTokenError:
        raise _invalid()

    if settings.authorized_parties and "azp" in payload:
        if payload["azp"] not in settings.authorized_parties:
            raise _invalid()

    sub = payload.get("sub")
    if not sub:
        raise _invalid()
    return sub


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise _invalid("Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _invalid("Invalid authorization header")
    return parts[1]


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    from staydesk.infra.db import txn

    with txn() as cur:
        cur.execute(
            "SELECT id, external_subject, email, name FROM users WHERE external_subject = %s",
            (external_subject,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        return CurrentUser(id=str(row[0]), external_subject=row[1], email=row[2], name=row[3])


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: resolve the authenticated user.

    Raises:
        HTTPException: 401 if token invalid/missing, 403 if user unknown.
    """
    sub = verify_token(_extract_bearer_token(request))

    user = _get_user_from_db(sub)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


CurrentUserDep = Depends(get_current_user)
