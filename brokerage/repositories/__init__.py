"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each entity. Every call is
bounded by DB_OPERATION_TIMEOUT_SECONDS; timeouts and lost connections surface
as UnavailableError, stale optimistic-lock writes as ConflictError.

Billing records are only writable through PrivilegedBillingRepository, which
requires a PrivilegedGrant (see brokerage.repositories.billing).
"""
