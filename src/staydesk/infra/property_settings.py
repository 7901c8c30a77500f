"""Per-property billing policy.

Loads the tax and service-charge rates a property bills with into an
explicit PropertyContext that is passed to every ledger and lifecycle
operation. Nothing in the service layer reads a "current property" from
global state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from .db import fetchone


class PropertyNotFoundError(Exception):
    """Raised when the property row does not exist."""

    def __init__(self, property_id: str):
        self.property_id = property_id
        super().__init__(f"Property {property_id} not found")


@dataclass(frozen=True)
class PropertyContext:
    """Billing policy for one property.

    Attributes:
        property_id: Tenant-isolation key for every query.
        code: Short property code used in folio numbers.
        tax_rate: Tax percentage applied to charges (10 means 10%).
        service_charge_rate: Service-charge percentage applied to charges.
    """

    property_id: str
    code: str = "PROP"
    tax_rate: Decimal = Decimal("0")
    service_charge_rate: Decimal = Decimal("0")


def _as_rate(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def load_property_context(cur: PgCursor, property_id: str) -> PropertyContext:
    """Load the billing policy for a property.

    NULL rates are treated as 0%.

    Raises:
        PropertyNotFoundError: Property does not exist.
    """
    row = fetchone(
        cur,
        """
        SELECT id, code, tax_rate, service_charge_rate
        FROM properties
        WHERE id = %s
        """,
        (property_id,),
    )
    if row is None:
        raise PropertyNotFoundError(property_id)

    return PropertyContext(
        property_id=str(row[0]),
        code=row[1] or "PROP",
        tax_rate=_as_rate(row[2]),
        service_charge_rate=_as_rate(row[3]),
    )
