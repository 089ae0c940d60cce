# (c) Copyright Datacraft, 2026
"""Database module for passkey-server."""
from .orm import User, UserCredential, UserSession
from .base import Base
from .engine import make_engine, make_session_factory, create_tables

__all__ = [
	'Base',
	'User',
	'UserCredential',
	'UserSession',
	'make_engine',
	'make_session_factory',
	'create_tables',
]
