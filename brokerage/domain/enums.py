"""
Domain enums stored as text columns.

Values are the wire/database spelling; compare against members, not literals.
"""
from enum import Enum


class Role(str, Enum):
    """Actor role. Determines visibility and mutation rights, not ownership."""

    GOD = "god"  # platform administrator
    PARENT = "parent"  # broker / office owner
    CHILD = "child"  # agent


class OrganizationStatus(str, Enum):
    ACTIVE = "active"
    PENDING_PAYMENT = "pending_payment"
    SUSPENDED = "suspended"


class BillingStatus(str, Enum):
    """
    Stored status of a billing record.

    OVERDUE is written by the monthly closing (or set by hand by the platform
    admin); readers classify pending rows as overdue on the fly through
    domain.billing.is_overdue.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class BillingType(str, Enum):
    ROYALTY = "royalty"
    COMMISSION = "commission"
    ADVERTISING = "advertising"
    PENALTY = "penalty"
    ADJUSTMENT = "adjustment"
    OTHER = "other"


class ScopeKind(str, Enum):
    """Row visibility granted to an actor."""

    UNRESTRICTED = "unrestricted"
    ORGANIZATION = "organization"
    AGENT = "agent"


class AuditAction(str, Enum):
    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_AMENDED = "transaction.amended"
    TRANSACTION_DELETED = "transaction.deleted"
    BILLING_CREATED = "billing.created"
    BILLING_UPDATED = "billing.updated"
    BILLING_CANCELLED = "billing.cancelled"
    CLOSING_RUN = "closing.run"
    ORGANIZATION_CREATED = "organization.created"
    ORGANIZATION_UPDATED = "organization.updated"
    PROFILE_CREATED = "profile.created"
    PROFILE_UPDATED = "profile.updated"
