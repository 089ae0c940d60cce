# (c) Copyright Datacraft, 2026
"""Store contracts shared by every backend."""
import secrets
from datetime import datetime, timedelta
from typing import Callable, Protocol, TypeVar

from pydantic import BaseModel

from passkey_server.models import Credential, User, utc_now

T = TypeVar("T", bound=BaseModel)

Clock = Callable[[], datetime]

# 32 random bytes, 256 bits of entropy
TOKEN_BYTES = 32


def generate_token() -> str:
	"""Generate a URL-safe, unguessable token."""
	return secrets.token_urlsafe(TOKEN_BYTES)


def counter_regressed(stored: int, incoming: int) -> bool:
	"""True when a signature counter failed to advance.

	Authenticators that do not implement counters always report zero, so a
	pair of zero counters is not a regression.
	"""
	if stored == 0 and incoming == 0:
		return False
	return incoming <= stored


class SessionStore(Protocol[T]):
	"""TTL-bound token -> value storage.

	Every read treats an expired entry as absent whether or not the backend
	has purged it. `consume` is an atomic get-and-delete: among concurrent
	callers for one token exactly one receives the value.
	"""

	def create(self, value: T, ttl: timedelta) -> str:
		...

	def get(self, token: str) -> T | None:
		...

	def consume(self, token: str) -> T | None:
		...

	def delete(self, token: str) -> None:
		...

	def close(self) -> None:
		...


class CredentialStore(Protocol):
	"""Durable users and their credentials."""

	def get_or_create_user(
		self,
		email: str,
		name: str | None = None,
		display_name: str | None = None,
	) -> User:
		...

	def create_user(self, email: str, name: str = "", display_name: str = "") -> User:
		...

	def get_user(self, user_id: str) -> User | None:
		...

	def get_user_by_email(self, email: str) -> User | None:
		...

	def save_user(self, user: User) -> None:
		...

	def add_credential(self, user_id: str, credential: Credential) -> None:
		...

	def update_credential(self, user_id: str, credential: Credential) -> Credential:
		...

	def remove_credential(self, user_id: str, credential_id: bytes) -> bool:
		...

	def close(self) -> None:
		...


def merge_credential(stored: Credential, incoming: Credential) -> Credential:
	"""Apply an update to a stored credential without losing clone signals.

	The counter never moves backwards; a regression sets `clone_warning`,
	which stays set once raised.
	"""
	regressed = counter_regressed(stored.sign_count, incoming.sign_count)
	return stored.model_copy(update={
		"public_key": incoming.public_key,
		"sign_count": max(stored.sign_count, incoming.sign_count),
		"clone_warning": stored.clone_warning or incoming.clone_warning or regressed,
		"transports": incoming.transports or stored.transports,
		"label": incoming.label or stored.label,
		"device_type": incoming.device_type or stored.device_type,
		"updated_at": utc_now(),
	})
