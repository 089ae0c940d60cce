# (c) Copyright Datacraft, 2026
"""Relational stores on SQLAlchemy."""
import logging
from datetime import timedelta
from typing import Generic

from sqlalchemy import select, delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passkey_server.db.orm import (
	User as UserRow,
	UserCredential,
	UserSession,
	as_utc,
)
from passkey_server.exceptions import Conflict, Internal, NotFound
from passkey_server.models import Credential, User, normalize_email, utc_now

from .base import Clock, T, generate_token

logger = logging.getLogger(__name__)


class SQLSessionStore(Generic[T]):
	"""Session store on the ``user_session`` table.

	The table has no native TTL: ``expires`` is checked by the application on
	every read. Several logical stores share the table, separated by ``kind``.
	"""

	MAX_CREATE_ATTEMPTS = 5

	def __init__(
		self,
		session_factory: sessionmaker[Session],
		model: type[T],
		kind: str,
		clock: Clock = utc_now,
	):
		self._session_factory = session_factory
		self._model = model
		self._kind = kind
		self._clock = clock

	def create(self, value: T, ttl: timedelta) -> str:
		now = self._clock()
		for _ in range(self.MAX_CREATE_ATTEMPTS):
			token = generate_token()
			try:
				with self._session_factory() as db:
					self._cleanup_expired(db)
					db.add(UserSession(
						token=token,
						kind=self._kind,
						user_id=getattr(value, "user_id", None),
						data=value.model_dump_json(),
						created=now,
						expires=now + ttl,
					))
					db.commit()
				return token
			except IntegrityError:
				logger.warning(f"Token collision in {self._kind} store, retrying")
			except SQLAlchemyError as e:
				logger.error(f"Session create failed for {self._kind}: {e}")
				raise Internal("Session store unavailable") from e
		raise Internal("Could not allocate a unique session token")

	def get(self, token: str) -> T | None:
		try:
			with self._session_factory() as db:
				row = self._select(db, token)
				if row is None:
					return None
				if self._clock() >= as_utc(row.expires):
					return None
				return self._model.model_validate_json(row.data)
		except SQLAlchemyError as e:
			logger.error(f"Session get failed for {self._kind}: {e}")
			raise Internal("Session store unavailable") from e

	def consume(self, token: str) -> T | None:
		"""Read then delete; only the caller whose delete removed the row wins."""
		try:
			with self._session_factory() as db:
				row = self._select(db, token)
				if row is None:
					return None
				data, expires = row.data, as_utc(row.expires)
				result = db.execute(
					delete(UserSession).where(
						UserSession.token == token,
						UserSession.kind == self._kind,
					)
				)
				db.commit()
				if result.rowcount != 1:
					return None
		except SQLAlchemyError as e:
			logger.error(f"Session consume failed for {self._kind}: {e}")
			raise Internal("Session store unavailable") from e

		if self._clock() >= expires:
			return None
		return self._model.model_validate_json(data)

	def delete(self, token: str) -> None:
		try:
			with self._session_factory() as db:
				db.execute(
					delete(UserSession).where(
						UserSession.token == token,
						UserSession.kind == self._kind,
					)
				)
				db.commit()
		except SQLAlchemyError as e:
			logger.error(f"Session delete failed for {self._kind}: {e}")
			raise Internal("Session store unavailable") from e

	def close(self) -> None:
		# the engine is shared and disposed by its owner
		pass

	def _select(self, db: Session, token: str) -> UserSession | None:
		return db.scalar(
			select(UserSession).where(
				UserSession.token == token,
				UserSession.kind == self._kind,
			)
		)

	def _cleanup_expired(self, db: Session) -> None:
		"""Remove expired rows of this kind."""
		db.execute(
			delete(UserSession).where(
				UserSession.kind == self._kind,
				UserSession.expires < self._clock(),
			)
		)


def _credential_key(credential_id: bytes) -> str:
	return bytes_to_base64url(credential_id)


def _to_credential(row: UserCredential, credential_id: bytes | None = None) -> Credential:
	return Credential(
		id=credential_id if credential_id is not None else base64url_to_bytes(row.id),
		public_key=row.public_key,
		sign_count=row.sign_count,
		clone_warning=row.clone_warning,
		transports=list(row.transports or []),
		label=row.label or "",
		device_type=row.device_type,
		created_at=as_utc(row.created),
		updated_at=as_utc(row.updated) if row.updated else None,
	)


def _to_user(row: UserRow) -> User:
	return User(
		id=row.id,
		email=row.email,
		name=row.name or "",
		display_name=row.display_name or "",
		credentials=[_to_credential(c) for c in row.credentials],
		created_at=as_utc(row.created),
		is_active=row.is_active,
		is_deleted=row.is_deleted,
	)


class SQLCredentialStore:
	"""Users and credentials in the ``user`` and ``user_credential`` tables.

	Email uniqueness and credential-id uniqueness are enforced by constraints;
	credential updates lock the credential row for the read-modify-write.
	"""

	def __init__(self, session_factory: sessionmaker[Session]):
		self._session_factory = session_factory

	def get_or_create_user(
		self,
		email: str,
		name: str | None = None,
		display_name: str | None = None,
	) -> User:
		user = self.get_user_by_email(email)
		if user is not None:
			return user
		try:
			return self.create_user(email, name or email, display_name or name or email)
		except Conflict:
			# lost the race to a concurrent creator
			user = self.get_user_by_email(email)
			if user is None:
				raise
			return user

	def create_user(self, email: str, name: str = "", display_name: str = "") -> User:
		user = User(email=normalize_email(email), name=name, display_name=display_name)
		try:
			with self._session_factory() as db:
				db.add(UserRow(
					id=user.id,
					email=user.email,
					name=user.name,
					display_name=user.display_name,
					created=user.created_at,
					is_active=True,
					is_deleted=False,
				))
				db.commit()
		except IntegrityError as e:
			raise Conflict(f"User with email {user.email} already exists") from e
		except SQLAlchemyError as e:
			logger.error(f"Create user failed: {e}")
			raise Internal("Credential store unavailable") from e
		logger.info(f"Created user {user.id}")
		return user

	def get_user(self, user_id: str) -> User | None:
		return self._find_user(UserRow.id == user_id)

	def get_user_by_email(self, email: str) -> User | None:
		return self._find_user(UserRow.email == normalize_email(email))

	def save_user(self, user: User) -> None:
		try:
			with self._session_factory() as db:
				row = db.get(UserRow, user.id)
				if row is None:
					raise NotFound(f"User not found: {user.id}")
				row.name = user.name
				row.display_name = user.display_name
				row.is_active = user.is_active
				row.is_deleted = user.is_deleted
				db.commit()
		except SQLAlchemyError as e:
			logger.error(f"Save user failed: {e}")
			raise Internal("Credential store unavailable") from e

	def add_credential(self, user_id: str, credential: Credential) -> None:
		try:
			with self._session_factory() as db:
				if db.get(UserRow, user_id) is None:
					raise NotFound(f"User not found: {user_id}")
				db.add(UserCredential(
					id=_credential_key(credential.id),
					user_id=user_id,
					public_key=credential.public_key,
					sign_count=credential.sign_count,
					clone_warning=credential.clone_warning,
					transports=list(credential.transports),
					label=credential.label,
					device_type=credential.device_type,
					created=credential.created_at,
				))
				db.commit()
		except IntegrityError as e:
			raise Conflict("Credential already registered") from e
		except SQLAlchemyError as e:
			logger.error(f"Add credential failed: {e}")
			raise Internal("Credential store unavailable") from e
		logger.debug(f"Credential added for user {user_id}")

	def update_credential(self, user_id: str, credential: Credential) -> Credential:
		"""Advance a credential's counter with a compare-and-swap.

		The counter only moves when the stored value is below the incoming
		one (or both are zero), checked by the UPDATE itself so concurrent
		logins cannot both pass on a stale read. When the swap matches no
		row the counter regressed and ``clone_warning`` is set instead.
		"""
		key = _credential_key(credential.id)
		new_count = credential.sign_count
		try:
			with self._session_factory() as db:
				row = self._find_credential(db, user_id, key)
				if row is None:
					raise NotFound("Credential not found for user")

				changes = self._credential_changes(credential)
				if new_count > 0:
					advances = UserCredential.sign_count < new_count
				else:
					# authenticators without a counter always report zero
					advances = UserCredential.sign_count == 0
				swapped = db.execute(
					update(UserCredential)
					.where(
						UserCredential.id == key,
						UserCredential.user_id == user_id,
						advances,
					)
					.values(sign_count=new_count, **changes)
					.execution_options(synchronize_session=False)
				)
				if swapped.rowcount == 0:
					flagged = db.execute(
						update(UserCredential)
						.where(UserCredential.id == key, UserCredential.user_id == user_id)
						.values({**changes, "clone_warning": True})
						.execution_options(synchronize_session=False)
					)
					if flagged.rowcount == 0:
						raise NotFound("Credential not found for user")
				db.commit()

				db.refresh(row)
				return _to_credential(row, credential.id)
		except SQLAlchemyError as e:
			logger.error(f"Update credential failed: {e}")
			raise Internal("Credential store unavailable") from e

	def remove_credential(self, user_id: str, credential_id: bytes) -> bool:
		try:
			with self._session_factory() as db:
				result = db.execute(
					delete(UserCredential).where(
						UserCredential.id == _credential_key(credential_id),
						UserCredential.user_id == user_id,
					)
				)
				db.commit()
				return result.rowcount > 0
		except SQLAlchemyError as e:
			logger.error(f"Remove credential failed: {e}")
			raise Internal("Credential store unavailable") from e

	def close(self) -> None:
		pass

	def _find_credential(self, db: Session, user_id: str, key: str) -> UserCredential | None:
		return db.scalar(
			select(UserCredential).where(
				UserCredential.id == key,
				UserCredential.user_id == user_id,
			)
		)

	@staticmethod
	def _credential_changes(credential: Credential) -> dict:
		"""Columns an update carries besides the counter; empty fields keep the stored value."""
		changes: dict = {"public_key": credential.public_key, "updated": utc_now()}
		if credential.transports:
			changes["transports"] = list(credential.transports)
		if credential.label:
			changes["label"] = credential.label
		if credential.device_type:
			changes["device_type"] = credential.device_type
		if credential.clone_warning:
			changes["clone_warning"] = True
		return changes

	def _find_user(self, condition) -> User | None:
		try:
			with self._session_factory() as db:
				row = db.scalar(
					select(UserRow).where(condition, UserRow.is_deleted.is_(False))
				)
				if row is None:
					return None
				return _to_user(row)
		except SQLAlchemyError as e:
			logger.error(f"User lookup failed: {e}")
			raise Internal("Credential store unavailable") from e
