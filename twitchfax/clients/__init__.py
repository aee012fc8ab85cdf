"""Expose the low-level printer and storage clients."""

from .cat_printer import CatPrinterClient, scan_printers
from .sqlite_store import SQLiteStore

__all__ = ["CatPrinterClient", "SQLiteStore", "scan_printers"]
