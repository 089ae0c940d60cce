# (c) Copyright Datacraft, 2026
"""In-process stores."""
import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Generic

from passkey_server.exceptions import Conflict, NotFound
from passkey_server.models import Credential, User, normalize_email, utc_now

from .base import Clock, T, generate_token, merge_credential

logger = logging.getLogger(__name__)


class MemorySessionStore(Generic[T]):
	"""Unsynchronized token map for single-threaded use.

	Expired entries are lazily dropped on `create`, `get` and `consume`.
	"""

	def __init__(self, clock: Clock = utc_now):
		self._clock = clock
		self._entries: dict[str, tuple[T, datetime]] = {}

	def create(self, value: T, ttl: timedelta) -> str:
		self._cleanup()
		token = generate_token()
		while token in self._entries:
			token = generate_token()
		self._entries[token] = (value.model_copy(deep=True), self._clock() + ttl)
		return token

	def get(self, token: str) -> T | None:
		entry = self._entries.get(token)
		if entry is None:
			return None
		value, expires_at = entry
		if self._clock() >= expires_at:
			del self._entries[token]
			return None
		return value.model_copy(deep=True)

	def consume(self, token: str) -> T | None:
		entry = self._entries.pop(token, None)
		if entry is None:
			return None
		value, expires_at = entry
		if self._clock() >= expires_at:
			return None
		return value

	def delete(self, token: str) -> None:
		self._entries.pop(token, None)

	def close(self) -> None:
		self._entries.clear()

	def __len__(self) -> int:
		return len(self._entries)

	def _cleanup(self) -> None:
		"""Remove expired entries."""
		now = self._clock()
		expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
		for k in expired:
			del self._entries[k]


class ConcurrentMemorySessionStore(Generic[T]):
	"""Token map safe for use from many request threads."""

	def __init__(self, clock: Clock = utc_now):
		self._inner: MemorySessionStore[T] = MemorySessionStore(clock)
		self._lock = threading.Lock()

	def create(self, value: T, ttl: timedelta) -> str:
		with self._lock:
			return self._inner.create(value, ttl)

	def get(self, token: str) -> T | None:
		with self._lock:
			return self._inner.get(token)

	def consume(self, token: str) -> T | None:
		with self._lock:
			return self._inner.consume(token)

	def delete(self, token: str) -> None:
		with self._lock:
			self._inner.delete(token)

	def close(self) -> None:
		with self._lock:
			self._inner.close()

	def __len__(self) -> int:
		with self._lock:
			return len(self._inner)


class MemoryCredentialStore:
	"""Users and credentials held in process memory.

	Lock order is always user lock, then index lock. The index lock guards
	the email and credential-id indexes and is never held while waiting on a
	user lock.
	"""

	def __init__(self):
		self._users: dict[str, User] = {}
		self._by_email: dict[str, str] = {}
		self._by_credential: dict[bytes, str] = {}
		self._index_lock = threading.Lock()
		self._user_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)

	def get_or_create_user(
		self,
		email: str,
		name: str | None = None,
		display_name: str | None = None,
	) -> User:
		email = normalize_email(email)
		with self._index_lock:
			user_id = self._by_email.get(email)
			if user_id is None:
				user = self._insert_user(email, name or email, display_name or name or email)
				return user.model_copy(deep=True)
			user = self._users[user_id]
			if user.is_deleted:
				# the email stays reserved by the deleted account
				raise Conflict(f"User with email {email} already exists")
			return user.model_copy(deep=True)

	def create_user(self, email: str, name: str = "", display_name: str = "") -> User:
		email = normalize_email(email)
		with self._index_lock:
			if email in self._by_email:
				raise Conflict(f"User with email {email} already exists")
			user = self._insert_user(email, name, display_name)
			return user.model_copy(deep=True)

	def get_user(self, user_id: str) -> User | None:
		with self._index_lock:
			user = self._users.get(user_id)
			if user is None or user.is_deleted:
				return None
			return user.model_copy(deep=True)

	def get_user_by_email(self, email: str) -> User | None:
		with self._index_lock:
			user_id = self._by_email.get(normalize_email(email))
			if user_id is None:
				return None
			user = self._users[user_id]
			if user.is_deleted:
				return None
			return user.model_copy(deep=True)

	def save_user(self, user: User) -> None:
		with self._user_lock(user.id):
			with self._index_lock:
				stored = self._users.get(user.id)
				if stored is None:
					raise NotFound(f"User not found: {user.id}")
				stored.name = user.name
				stored.display_name = user.display_name
				stored.is_active = user.is_active
				stored.is_deleted = user.is_deleted

	def add_credential(self, user_id: str, credential: Credential) -> None:
		with self._user_lock(user_id):
			with self._index_lock:
				user = self._users.get(user_id)
				if user is None:
					raise NotFound(f"User not found: {user_id}")
				if credential.id in self._by_credential:
					raise Conflict("Credential already registered")
				self._by_credential[credential.id] = user_id
				user.credentials.append(credential.model_copy(deep=True))
		logger.debug("Credential added for user %s", user_id)

	def update_credential(self, user_id: str, credential: Credential) -> Credential:
		with self._user_lock(user_id):
			user = self._users.get(user_id)
			if user is None:
				raise NotFound(f"User not found: {user_id}")
			for i, stored in enumerate(user.credentials):
				if stored.id == credential.id:
					merged = merge_credential(stored, credential)
					with self._index_lock:
						user.credentials[i] = merged
					return merged.model_copy(deep=True)
		raise NotFound("Credential not found for user")

	def remove_credential(self, user_id: str, credential_id: bytes) -> bool:
		with self._user_lock(user_id):
			user = self._users.get(user_id)
			if user is None:
				return False
			for i, stored in enumerate(user.credentials):
				if stored.id == credential_id:
					with self._index_lock:
						del user.credentials[i]
						self._by_credential.pop(credential_id, None)
					return True
		return False

	def close(self) -> None:
		pass

	def _insert_user(self, email: str, name: str, display_name: str) -> User:
		# caller holds the index lock
		user = User(email=email, name=name, display_name=display_name)
		self._users[user.id] = user
		self._by_email[email] = user.id
		logger.info("Created user %s", user.id)
		return user

	def _user_lock(self, user_id: str) -> threading.Lock:
		with self._index_lock:
			return self._user_locks[user_id]
