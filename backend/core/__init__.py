"""Shared infrastructure: settings, database sessions, logging and errors."""
from core.config import settings
from core.database import Base, GUID, get_db
from core.logging import configure_logging, get_logger

__all__ = ["settings", "Base", "GUID", "get_db", "configure_logging", "get_logger"]
