# (c) Copyright Datacraft, 2026
"""Redis-backed session store."""
import json
import logging
from datetime import datetime, timedelta
from typing import Generic

import redis

from passkey_server.exceptions import Internal
from passkey_server.models import utc_now

from .base import Clock, T, generate_token

logger = logging.getLogger(__name__)


class RedisSessionStore(Generic[T]):
	"""Session store on a remote Redis.

	Keys are ``<prefix>:<token>`` with a native TTL. The payload also carries
	``expires_at`` so expiry is decided by the same clock as every other
	backend, independent of when Redis evicts the key.

	Args:
		client: A ``redis.Redis`` client created with ``decode_responses=True``
		model: Pydantic model class of stored values
		prefix: Key namespace, one per logical store
		clock: Source of the current UTC time
	"""

	MAX_CREATE_ATTEMPTS = 5

	def __init__(
		self,
		client: redis.Redis,
		model: type[T],
		prefix: str,
		clock: Clock = utc_now,
	):
		self._client = client
		self._model = model
		self._prefix = prefix
		self._clock = clock

	def create(self, value: T, ttl: timedelta) -> str:
		expires_at = self._clock() + ttl
		payload = json.dumps({
			"expires_at": expires_at.isoformat(),
			"value": value.model_dump(mode="json"),
		})
		for _ in range(self.MAX_CREATE_ATTEMPTS):
			token = generate_token()
			try:
				# NX: never overwrite a live entry
				stored = self._client.set(self._key(token), payload, ex=ttl, nx=True)
			except redis.RedisError as e:
				logger.error(f"Redis create failed for {self._prefix}: {e}")
				raise Internal("Session store unavailable") from e
			if stored:
				return token
		raise Internal("Could not allocate a unique session token")

	def get(self, token: str) -> T | None:
		try:
			raw = self._client.get(self._key(token))
		except redis.RedisError as e:
			logger.error(f"Redis get failed for {self._prefix}: {e}")
			raise Internal("Session store unavailable") from e
		return self._decode(raw)

	def consume(self, token: str) -> T | None:
		try:
			# Get and delete in one operation (single use)
			raw = self._client.getdel(self._key(token))
		except redis.RedisError as e:
			logger.error(f"Redis consume failed for {self._prefix}: {e}")
			raise Internal("Session store unavailable") from e
		return self._decode(raw)

	def delete(self, token: str) -> None:
		try:
			self._client.delete(self._key(token))
		except redis.RedisError as e:
			logger.error(f"Redis delete failed for {self._prefix}: {e}")
			raise Internal("Session store unavailable") from e

	def close(self) -> None:
		# the client is shared between stores and closed by its owner
		pass

	def _key(self, token: str) -> str:
		return f"{self._prefix}:{token}"

	def _decode(self, raw: str | bytes | None) -> T | None:
		if not raw:
			return None
		try:
			envelope = json.loads(raw)
			expires_at = datetime.fromisoformat(envelope["expires_at"])
			if self._clock() >= expires_at:
				return None
			return self._model.model_validate(envelope["value"])
		except (ValueError, KeyError, TypeError) as e:
			logger.error(f"Undecodable entry in {self._prefix}: {e}")
			raise Internal("Corrupt session entry") from e
