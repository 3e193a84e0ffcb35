"""Paystock: payment-driven inventory and order ledger."""

__version__ = "1.0.0"
