"""Offline-first messaging sync engine for a two-party marketplace."""

__version__ = "0.1.0"
