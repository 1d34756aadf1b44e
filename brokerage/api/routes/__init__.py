"""
API route modules.

This package contains subrouters for:
- Transactions: closing, amending, deleting and listing deals; financial metrics
- Billing: platform-admin billing records, summaries and the monthly closing
- Administration: organizations and profiles
- Reports: CSV/XLSX/PDF exports

Routers are included from brokerage.api.main (under the /api/v1 prefix).
"""
