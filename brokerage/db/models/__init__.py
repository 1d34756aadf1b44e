"""
ORM models for organizations, profiles, transactions, billing records and the
audit log.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .organizations import (  # noqa: F401
    Organization,
    Profile,
)
from .transactions import Transaction  # noqa: F401
from .billing import BillingRecord  # noqa: F401
from .audit import AuditLogEntry  # noqa: F401
