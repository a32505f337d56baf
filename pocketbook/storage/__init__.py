"""
Storage Package

Provides abstract interfaces and the SQL implementation of them.
"""

from pocketbook.storage.database import Database
from pocketbook.storage.interface import (
    AuditStorageInterface,
    InvoiceFilter,
    InvoiceStorageInterface,
    PocketStorageInterface,
    UserStorageInterface,
)
from pocketbook.storage.sql_storage import (
    SqlAuditStorage,
    SqlInvoiceStorage,
    SqlPocketStorage,
    SqlUserStorage,
)

__all__ = [
    "Database",
    # Interfaces
    "AuditStorageInterface",
    "InvoiceFilter",
    "InvoiceStorageInterface",
    "PocketStorageInterface",
    "UserStorageInterface",
    # SQL implementation
    "SqlAuditStorage",
    "SqlInvoiceStorage",
    "SqlPocketStorage",
    "SqlUserStorage",
]
