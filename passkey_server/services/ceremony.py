# (c) Copyright Datacraft, 2026
"""Registration and login ceremonies, and the sessions they issue."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from passkey_server.exceptions import (
	Expired,
	InvalidRequest,
	NotFound,
	Unauthorized,
	VerificationFailed,
)
from passkey_server.models import (
	AuthSession,
	CeremonyKind,
	CeremonyState,
	Credential,
	User,
	normalize_email,
	utc_now,
)
from passkey_server.stores.base import Clock, CredentialStore, SessionStore
from passkey_server.webauthn.service import WebAuthnCapability

logger = logging.getLogger(__name__)


@dataclass
class CeremonyStart:
	"""Challenge options for the browser and the token that resumes the ceremony."""
	options: dict[str, Any]
	token: str
	expires_at: datetime


@dataclass
class IssuedSession:
	"""A freshly issued authenticated session."""
	token: str
	user_id: str
	expires_at: datetime


@dataclass
class CeremonyResult:
	"""Outcome of a successful finish."""
	user: User
	credential: Credential
	session: IssuedSession
	clone_warning: bool = False


class CeremonyOrchestrator:
	"""Drives Begin/Finish for registration and login.

	A ceremony token is consumed before anything else happens on finish, so a
	token can complete at most once. A failed finish does not restore the
	token: the client starts a new ceremony.
	"""

	CEREMONY_TTL = timedelta(minutes=5)
	SESSION_TTL = timedelta(hours=1)

	def __init__(
		self,
		credentials: CredentialStore,
		ceremonies: SessionStore[CeremonyState],
		sessions: SessionStore[AuthSession],
		webauthn: WebAuthnCapability,
		ceremony_ttl: timedelta | None = None,
		session_ttl: timedelta | None = None,
		clock: Clock = utc_now,
	):
		self.credentials = credentials
		self.ceremonies = ceremonies
		self.sessions = sessions
		self.webauthn = webauthn
		self.ceremony_ttl = ceremony_ttl or self.CEREMONY_TTL
		self.session_ttl = session_ttl or self.SESSION_TTL
		self.clock = clock

	def begin_registration(
		self,
		email: str,
		name: str | None = None,
		display_name: str | None = None,
	) -> CeremonyStart:
		"""Start registering a passkey, creating the user on first use."""
		email = require_email(email)
		user = self.credentials.get_or_create_user(email, name, display_name)

		challenge = self.webauthn.begin_registration(user)
		start = self._store_ceremony(CeremonyKind.REGISTRATION, user, challenge.pending_state, challenge.options)

		logger.info(f"Registration started for user {user.id}")
		return start

	def finish_registration(
		self,
		token: str,
		client_response: dict[str, Any],
		label: str = "",
		email: str | None = None,
	) -> CeremonyResult:
		"""Verify the authenticator's attestation and store the new passkey.

		Raises:
			Expired: token missing, used or expired
			NotFound: the ceremony's user no longer exists
			VerificationFailed: identity mismatch or rejected attestation
			Conflict: the credential is already registered
		"""
		state = self._consume(token, CeremonyKind.REGISTRATION)
		user = self._ceremony_user(state, email)

		verified = self.webauthn.finish_registration(user, state.pending_state, client_response)
		credential = Credential(
			id=verified.credential_id,
			public_key=verified.public_key,
			sign_count=verified.sign_count,
			transports=verified.transports,
			label=label,
			device_type=verified.device_type,
		)
		self.credentials.add_credential(user.id, credential)
		session = self.issue_session(user.id)

		logger.info(f"Passkey registered for user {user.id}")
		return CeremonyResult(user=user, credential=credential, session=session)

	def begin_login(self, email: str) -> CeremonyStart:
		"""Start a login limited to the user's registered passkeys."""
		email = require_email(email)
		user = self.credentials.get_user_by_email(email)
		if user is None:
			raise NotFound("User not found")
		if not user.credentials:
			raise NotFound("No passkeys registered for user")

		challenge = self.webauthn.begin_login(user)
		start = self._store_ceremony(CeremonyKind.LOGIN, user, challenge.pending_state, challenge.options)

		logger.info(f"Login started for user {user.id}")
		return start

	def finish_login(
		self,
		token: str,
		client_response: dict[str, Any],
		label: str = "",
		email: str | None = None,
	) -> CeremonyResult:
		"""Verify the assertion, advance the counter and issue a session.

		A counter regression does not fail the login; it is logged and
		reported on the result as ``clone_warning``. A non-empty ``label``
		replaces the stored one.
		"""
		state = self._consume(token, CeremonyKind.LOGIN)
		user = self._ceremony_user(state, email)

		verified = self.webauthn.finish_login(user, state.pending_state, client_response)
		stored = user.find_credential(verified.credential_id)
		if stored is None:
			raise VerificationFailed("Unknown credential")

		updated = self.credentials.update_credential(
			user.id,
			stored.model_copy(update={
				"sign_count": verified.sign_count,
				"transports": verified.transports or stored.transports,
				"label": label,
			}),
		)
		if updated.clone_warning:
			logger.warning(
				f"Clone warning for user {user.id}: credential counter "
				f"{verified.sign_count} did not advance past {stored.sign_count}"
			)

		session = self.issue_session(user.id)
		logger.info(f"Login finished for user {user.id}")
		return CeremonyResult(
			user=user,
			credential=updated,
			session=session,
			clone_warning=updated.clone_warning,
		)

	def issue_session(self, user_id: str) -> IssuedSession:
		expires_at = self.clock() + self.session_ttl
		token = self.sessions.create(
			AuthSession(user_id=user_id, expires_at=expires_at),
			self.session_ttl,
		)
		return IssuedSession(token=token, user_id=user_id, expires_at=expires_at)

	def logout(self, session_token: str | None) -> None:
		if session_token:
			self.sessions.delete(session_token)

	def authorize(self, session_token: str | None) -> AuthSession:
		"""Guard for protected operations.

		Raises:
			Unauthorized: no token, or the session is unknown or expired
		"""
		if not session_token:
			raise Unauthorized("Not authenticated")
		session = self.sessions.get(session_token)
		if session is None or self.clock() >= session.expires_at:
			raise Unauthorized("Session expired or invalid")
		return session

	def current_user(self, session_token: str | None) -> User:
		session = self.authorize(session_token)
		user = self.credentials.get_user(session.user_id)
		if user is None:
			raise Unauthorized("Session user no longer exists")
		return user

	def list_credential_labels(self, email: str) -> list[str]:
		user = self.credentials.get_user_by_email(require_email(email))
		if user is None:
			raise NotFound("User not found")
		return [cred.label for cred in user.credentials]

	def remove_credential(self, session_token: str | None, credential_id: bytes) -> bool:
		session = self.authorize(session_token)
		removed = self.credentials.remove_credential(session.user_id, credential_id)
		if removed:
			logger.info(f"Passkey removed for user {session.user_id}")
		return removed

	def _store_ceremony(
		self,
		kind: CeremonyKind,
		user: User,
		pending_state: str,
		options: dict[str, Any],
	) -> CeremonyStart:
		expires_at = self.clock() + self.ceremony_ttl
		token = self.ceremonies.create(
			CeremonyState(kind=kind, user_id=user.id, pending_state=pending_state),
			self.ceremony_ttl,
		)
		return CeremonyStart(options=options, token=token, expires_at=expires_at)

	def _consume(self, token: str | None, kind: CeremonyKind) -> CeremonyState:
		if not token:
			raise InvalidRequest("Ceremony token required")
		state = self.ceremonies.consume(token)
		if state is None:
			raise Expired("Ceremony expired or already used")
		if state.kind != kind:
			logger.warning(f"{state.kind.value} token presented to {kind.value} finish")
			raise Expired("Ceremony expired or already used")
		return state

	def _ceremony_user(self, state: CeremonyState, email: str | None) -> User:
		user = self.credentials.get_user(state.user_id)
		if user is None:
			raise NotFound("User not found")
		if email is not None and normalize_email(email) != user.email:
			logger.warning(f"Identity mismatch on ceremony for user {user.id}")
			raise VerificationFailed("Ceremony does not belong to this identity")
		return user


def require_email(email: str | None) -> str:
	if not email or "@" not in email:
		raise InvalidRequest("A valid email is required")
	return normalize_email(email)
