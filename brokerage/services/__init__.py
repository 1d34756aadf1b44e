"""
Domain services: rate resolution, the transaction ledger, billing records,
monthly closing, billing summaries and financial metrics.
"""
