"""Tests for OIDC JWT authentication.

Requests go through GET /folios/stats; the role lookup and the service
call are patched so only authentication is exercised.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
import requests
from fastapi.testclient import TestClient

from helpers import OIDC_ENV, _create_jwks, _create_token, _generate_rsa_keypair
from staydesk.api.factory import create_app

URL = "/folios/stats?property_id=prop-1"


@pytest.fixture
def rsa_keypair():
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def mock_jwks_fetch(jwks):
    with patch("staydesk.api.auth._fetch_jwks", return_value=jwks) as mock:
        yield mock


@pytest.fixture
def mock_db_user():
    """Only subject "user-123" exists."""
    user_id = str(uuid4())

    def mock_get_user(external_subject: str):
        from staydesk.api.auth import CurrentUser

        if external_subject == "user-123":
            return CurrentUser(
                id=user_id,
                external_subject="user-123",
                email="test@example.com",
                name="Test User",
            )
        return None

    with patch("staydesk.api.auth._get_user_from_db", side_effect=mock_get_user) as mock:
        mock.user_id = user_id
        yield mock


@pytest.fixture(autouse=True)
def _backend():
    with patch("staydesk.api.rbac._get_user_role_for_property", return_value="viewer"), \
         patch("staydesk.infra.db.txn") as mock_txn, \
         patch("staydesk.services.folio_service.get_folio_stats", return_value={"total_open": 0}):
        mock_txn.return_value.__enter__.return_value = MagicMock()
        yield


def _get(token: str | None = None, env: dict | None = None, header: str | None = None):
    headers = {}
    if header is not None:
        headers["Authorization"] = header
    elif token is not None:
        headers["Authorization"] = f"Bearer {token}"
    with patch.dict("os.environ", env or OIDC_ENV):
        client = TestClient(create_app(role="public"))
        return client.get(URL, headers=headers)


class TestAuthNoToken:
    def test_missing_auth_header(self):
        response = _get()
        assert response.status_code == 401
        assert "Missing authorization header" in response.json()["detail"]

    def test_invalid_bearer_format(self):
        response = _get(header="Basic abc")
        assert response.status_code == 401
        assert "Invalid authorization header" in response.json()["detail"]


class TestAuthInvalidToken:
    def test_malformed_token(self, mock_jwks_fetch):
        response = _get("abc")
        assert response.status_code == 401
        assert "Invalid token" in response.json()["detail"]

    def test_expired_token(self, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, exp=int(time.time()) - 3600)

        response = _get(token)
        assert response.status_code == 401
        assert "Token expired" in response.json()["detail"]

    def test_wrong_issuer(self, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, iss="https://wrong-issuer.com"))
        assert response.status_code == 401

    def test_wrong_audience(self, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, aud="wrong-audience"))
        assert response.status_code == 401

    def test_unknown_kid(self, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, kid="unknown-key"))
        assert response.status_code == 401
        # Initial fetch plus one forced refresh
        assert mock_jwks_fetch.call_count == 2

    def test_not_configured(self, rsa_keypair):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key), env={"OIDC_ISSUER": ""})
        assert response.status_code == 401


class TestAuthUser:
    def test_user_not_found(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, sub="unknown-user"))
        assert response.status_code == 403
        assert "User not found" in response.json()["detail"]

    def test_valid_token_and_user(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, sub="user-123"))
        assert response.status_code == 200


class TestAuthorizedParties:
    def test_azp_valid(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        env = {**OIDC_ENV, "OIDC_AUTHORIZED_PARTIES": "frontdesk-app,another-app"}
        response = _get(_create_token(private_key, azp="frontdesk-app"), env=env)
        assert response.status_code == 200

    def test_azp_invalid(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        env = {**OIDC_ENV, "OIDC_AUTHORIZED_PARTIES": "frontdesk-app"}
        response = _get(_create_token(private_key, azp="unauthorized-app"), env=env)
        assert response.status_code == 401

    def test_azp_not_required_when_not_configured(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        response = _get(_create_token(private_key, azp="any-app"))
        assert response.status_code == 200


class TestJWKSCache:
    def test_jwks_cached(self, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        assert _get(token).status_code == 200
        assert _get(token).status_code == 200
        assert mock_jwks_fetch.call_count == 1

    def test_jwks_refresh_on_unknown_kid(self, rsa_keypair, mock_db_user):
        private_key, public_key = rsa_keypair
        token = _create_token(private_key)

        with patch(
            "staydesk.api.auth._fetch_jwks",
            side_effect=[{"keys": []}, _create_jwks(public_key)],
        ) as mock_fetch:
            response = _get(token)

        assert response.status_code == 200
        assert mock_fetch.call_count == 2


class TestJWKSFetchError:
    @pytest.mark.parametrize(
        "error", [requests.RequestException("Network error"), requests.Timeout("Timeout")]
    )
    def test_jwks_unreachable(self, rsa_keypair, error):
        private_key, _ = rsa_keypair

        with patch("staydesk.api.auth._fetch_jwks", side_effect=error):
            response = _get(_create_token(private_key))

        assert response.status_code == 503
        assert "Auth temporarily unavailable" in response.json()["detail"]
