"""CareBill: hospital billing reconciliation service."""

__version__ = "1.0.0"
