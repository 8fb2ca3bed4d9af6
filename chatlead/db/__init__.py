"""Database helpers: engine/session access and schema creation."""

from .session import Base, get_engine, get_session
from .create_tables import create_all

__all__ = ["Base", "create_all", "get_engine", "get_session"]
