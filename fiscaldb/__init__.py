"""Fiscal-year partitioned databases over one shared SQLite connection."""

__version__ = "0.1.0"
