"""Database layer: SQLAlchemy 2.0 async."""

from __future__ import annotations

from oppzone.db.base import Base
from oppzone.db.engine import DatabaseManager

__all__ = ["Base", "DatabaseManager"]
