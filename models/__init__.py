"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SourceType, RunState, StopReason)
    product: Canonical catalog product, unique by barcode
    checkpoint: Per-source resumption state (database checkpoint backend)

Database Schema:
    JSON columns map to JSONB on PostgreSQL and to generic JSON on other
    dialects, so the same models run against SQLite in tests.

Usage:
    from models.base import Base, SourceType
    from models.product import Product
    from models.checkpoint import SyncCheckpoint
"""

__all__ = [
    "base",
    "product",
    "checkpoint",
]
