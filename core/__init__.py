"""
Core utilities and configuration for the catalog sync pipeline.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import SourceUnavailableError, CheckpointError
    from core.logging import setup_logging
"""

__all__ = [
    "config",
    "database",
    "exceptions",
    "logging",
]
