"""
Data Ingestion Module
"""
from .snapshot import SnapshotLoader, TableLoad

__all__ = [
    "SnapshotLoader",
    "TableLoad",
]
