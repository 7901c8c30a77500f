"""Shared pytest fixtures for Staydesk tests."""
import sys
sys.dont_write_bytecode = True

from decimal import Decimal  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache around every test.

    A JWKS cached by one test does not match the keys generated by the
    next, which shows up as intermittent 401s.
    """
    import staydesk.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture
def user_id():
    return str(uuid4())


@pytest.fixture
def fake_user(user_id):
    from staydesk.api.auth import CurrentUser

    return CurrentUser(
        id=user_id,
        external_subject="user-123",
        email="test@example.com",
        name="Test User",
    )


@pytest.fixture
def policy():
    """Property billing at 10% tax and 5% service charge."""
    from staydesk.infra.property_settings import PropertyContext

    return PropertyContext(
        property_id="prop-1",
        code="HTL",
        tax_rate=Decimal("10"),
        service_charge_rate=Decimal("5"),
    )
