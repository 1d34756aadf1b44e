"""Commission and billing engine for a multi-tenant real-estate brokerage platform."""

__version__ = "0.1.0"
