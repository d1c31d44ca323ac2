"""Booking transaction and escrow core for a rental marketplace."""

__version__ = "1.0.0"
