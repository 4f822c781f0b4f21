"""Database access layer for the fiscal-year databases.

This sub-package owns the shared connection, decides which fiscal year's
database a query targets, and keeps the rest of the code storage-agnostic.
"""

from .handle import FiscalYearDatabase
from .router import DatabaseRouter, RouterState, create_router
from .store import SQLiteStore

__all__ = ["DatabaseRouter", "FiscalYearDatabase", "RouterState", "SQLiteStore", "create_router"]
