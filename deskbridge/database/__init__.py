"""
Database connection and session management for DeskBridge.
"""

from .connection import create_engine, get_session, init_database, is_in_memory, session_scope

__all__ = ["create_engine", "get_session", "init_database", "is_in_memory", "session_scope"]
