"""Fare schedule cache, fare computation and fare reconciliation for cab bookings."""

__version__ = "0.1.0"
