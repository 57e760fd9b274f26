"""Psychi booking and cancellation engine."""

__version__ = "0.1.0"
