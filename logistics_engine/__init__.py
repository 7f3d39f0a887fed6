"""Lifecycle and payment reconciliation engine for sales orders, vehicles and gate passes."""

__version__ = "1.0.0"
