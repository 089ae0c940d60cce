# (c) Copyright Datacraft, 2026
"""Code-based signup and login delivered through a notifier."""
import logging
from datetime import timedelta

from passkey_server.exceptions import Conflict, InvalidRequest, NotFound, PasskeyError
from passkey_server.models import CodePurpose, PendingCode, User, normalize_email
from passkey_server.notifier import Notifier
from passkey_server.stores.base import CredentialStore, SessionStore

from .ceremony import CeremonyOrchestrator, IssuedSession, require_email

logger = logging.getLogger(__name__)

INVALID_CODE = "Invalid or expired verification code"


class CodeVerificationService:
	"""Signup and login by single-use code instead of a WebAuthn ceremony."""

	CODE_TTL = timedelta(minutes=10)

	def __init__(
		self,
		credentials: CredentialStore,
		codes: SessionStore[PendingCode],
		notifier: Notifier,
		orchestrator: CeremonyOrchestrator,
		code_ttl: timedelta | None = None,
	):
		self.credentials = credentials
		self.codes = codes
		self.notifier = notifier
		self.orchestrator = orchestrator
		self.code_ttl = code_ttl or self.CODE_TTL

	def begin_signup(self, email: str, name: str = "", display_name: str = "") -> None:
		"""Send a signup code; refuses emails that already have an account."""
		email = require_email(email)
		if self.credentials.get_user_by_email(email) is not None:
			raise Conflict(f"User with email {email} already exists")

		pending = PendingCode(
			purpose=CodePurpose.SIGNUP,
			email=email,
			name=name or email,
			display_name=display_name or name or email,
		)
		self._issue(pending, "Your verification code", "Your verification code is: {code}")
		logger.info(f"Signup code sent to {email}")

	def finish_signup(self, email: str, code: str) -> User:
		"""Redeem a signup code and create the user.

		Raises:
			InvalidRequest: code absent, expired, already used or issued to another email
			Conflict: the email was registered meanwhile
		"""
		pending = self._redeem(email, code, CodePurpose.SIGNUP)
		user = self.credentials.create_user(pending.email, pending.name, pending.display_name)
		logger.info(f"Signup finished for user {user.id}")
		return user

	def begin_login(self, email: str) -> None:
		"""Send a login code to an existing user."""
		email = require_email(email)
		user = self.credentials.get_user_by_email(email)
		if user is None:
			raise NotFound("User not found")

		pending = PendingCode(purpose=CodePurpose.LOGIN, email=user.email, user_id=user.id)
		self._issue(pending, "Your login verification code", "Your login verification code is: {code}")
		logger.info(f"Login code sent to user {user.id}")

	def finish_login(self, email: str, code: str) -> IssuedSession:
		"""Redeem a login code for an authenticated session."""
		pending = self._redeem(email, code, CodePurpose.LOGIN)
		user = self.credentials.get_user(pending.user_id or "")
		if user is None or user.email != pending.email:
			raise InvalidRequest(INVALID_CODE)
		session = self.orchestrator.issue_session(user.id)
		logger.info(f"Login with code finished for user {user.id}")
		return session

	def _issue(self, pending: PendingCode, subject: str, body: str) -> str:
		code = self.codes.create(pending, self.code_ttl)
		try:
			self.notifier.send(pending.email, subject, body.format(code=code))
		except PasskeyError:
			self.codes.delete(code)
			raise
		return code

	def _redeem(self, email: str, code: str, purpose: CodePurpose) -> PendingCode:
		if not code or not email:
			raise InvalidRequest(INVALID_CODE)
		pending = self.codes.consume(code)
		if pending is None:
			raise InvalidRequest(INVALID_CODE)
		if pending.purpose != purpose or pending.email != normalize_email(email):
			logger.warning(f"Verification code presented for the wrong {purpose.value} request")
			raise InvalidRequest(INVALID_CODE)
		return pending
