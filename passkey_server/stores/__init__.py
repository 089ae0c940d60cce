# (c) Copyright Datacraft, 2026
"""Pluggable session and credential stores."""
from .base import (
	SessionStore,
	CredentialStore,
	generate_token,
	counter_regressed,
)
from .memory import MemorySessionStore, ConcurrentMemorySessionStore, MemoryCredentialStore
from .cache import RedisSessionStore
from .sql import SQLSessionStore, SQLCredentialStore

__all__ = [
	"SessionStore",
	"CredentialStore",
	"generate_token",
	"counter_regressed",
	"MemorySessionStore",
	"ConcurrentMemorySessionStore",
	"MemoryCredentialStore",
	"RedisSessionStore",
	"SQLSessionStore",
	"SQLCredentialStore",
]
