"""Khata - event-sourced bookkeeping for village micro-lending."""

__version__ = "0.1.0"
