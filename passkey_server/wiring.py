# (c) Copyright Datacraft, 2026
"""Builds stores, capabilities and services from settings, and owns their shutdown."""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

import redis
from pydantic import BaseModel
from sqlalchemy import Engine

from .config import CredentialBackend, NotifierKind, SessionBackend, Settings
from .db.engine import create_tables, make_engine, make_session_factory
from .models import AuthSession, CeremonyState, PendingCode, utc_now
from .notifier import ConsoleNotifier, Notifier, SMTPNotifier
from .services import CeremonyOrchestrator, CodeVerificationService
from .stores import (
	ConcurrentMemorySessionStore,
	MemoryCredentialStore,
	MemorySessionStore,
	RedisSessionStore,
	SQLCredentialStore,
	SQLSessionStore,
)
from .stores.base import Clock, CredentialStore, SessionStore
from .webauthn import WebAuthnCapability, WebAuthnService

logger = logging.getLogger(__name__)

# namespace per logical session store: redis key prefix / user_session.kind
CEREMONY_NAMESPACE = "passkey_session"
AUTH_NAMESPACE = "passkey_auth"
CODE_NAMESPACE = "passkey_code"


@dataclass
class Services:
	"""Everything a request handler needs, plus the resources to release."""
	settings: Settings
	orchestrator: CeremonyOrchestrator
	codes: CodeVerificationService
	closers: list[Callable[[], None]] = field(default_factory=list)

	def close(self) -> None:
		for close in reversed(self.closers):
			try:
				close()
			except Exception:
				logger.exception("Error while releasing a resource")
		self.closers.clear()


class _Resources:
	"""Lazily opened connections shared by the stores."""

	def __init__(self, settings: Settings):
		self.settings = settings
		self.engine: Engine | None = None
		self.redis_client: redis.Redis | None = None
		self.closers: list[Callable[[], None]] = []

	def session_factory(self):
		if self.engine is None:
			self.engine = make_engine(self.settings.db_url)
			create_tables(self.engine)
			self.closers.append(self.engine.dispose)
			logger.info("Database engine ready")
		return make_session_factory(self.engine)

	def redis(self) -> redis.Redis:
		if self.redis_client is None:
			self.redis_client = redis.Redis.from_url(self.settings.redis_url, decode_responses=True)
			self.closers.append(self.redis_client.close)
			logger.info("Redis client ready")
		return self.redis_client


def _session_store(
	resources: _Resources,
	model: type[BaseModel],
	namespace: str,
	clock: Clock,
) -> SessionStore:
	backend = resources.settings.session_backend
	if backend == SessionBackend.MEMORY:
		return MemorySessionStore(clock)
	if backend == SessionBackend.CONCURRENT:
		return ConcurrentMemorySessionStore(clock)
	if backend == SessionBackend.REDIS:
		return RedisSessionStore(resources.redis(), model, namespace, clock)
	if backend == SessionBackend.SQL:
		return SQLSessionStore(resources.session_factory(), model, namespace, clock)
	raise ValueError(f"Unknown session backend: {backend}")


def _credential_store(resources: _Resources) -> CredentialStore:
	backend = resources.settings.credential_backend
	if backend == CredentialBackend.MEMORY:
		return MemoryCredentialStore()
	if backend == CredentialBackend.SQL:
		return SQLCredentialStore(resources.session_factory())
	raise ValueError(f"Unknown credential backend: {backend}")


def _notifier(settings: Settings) -> Notifier:
	if settings.notifier == NotifierKind.SMTP:
		return SMTPNotifier(
			host=settings.smtp_host,
			port=settings.smtp_port,
			sender=settings.smtp_sender,
			username=settings.smtp_username,
			password=settings.smtp_password,
			starttls=settings.smtp_starttls,
		)
	return ConsoleNotifier()


def build_services(
	settings: Settings,
	webauthn: WebAuthnCapability | None = None,
	notifier: Notifier | None = None,
	clock: Clock = utc_now,
) -> Services:
	"""Construct the service graph.

	Args:
		settings: Application settings
		webauthn: Override for the WebAuthn capability
		notifier: Override for code delivery
		clock: Source of the current UTC time for every store and service

	Returns:
		Services whose ``close`` releases every opened connection
	"""
	resources = _Resources(settings)

	credentials = _credential_store(resources)
	ceremonies = _session_store(resources, CeremonyState, CEREMONY_NAMESPACE, clock)
	sessions = _session_store(resources, AuthSession, AUTH_NAMESPACE, clock)
	codes = _session_store(resources, PendingCode, CODE_NAMESPACE, clock)

	orchestrator = CeremonyOrchestrator(
		credentials=credentials,
		ceremonies=ceremonies,
		sessions=sessions,
		webauthn=webauthn or WebAuthnService(
			rp_id=settings.webauthn_rp_id,
			rp_name=settings.webauthn_rp_name,
			origins=settings.webauthn_origins,
			timeout=settings.webauthn_timeout,
			user_verification=settings.webauthn_user_verification,
		),
		ceremony_ttl=timedelta(seconds=settings.ceremony_ttl_seconds),
		session_ttl=timedelta(seconds=settings.session_ttl_seconds),
		clock=clock,
	)
	code_service = CodeVerificationService(
		credentials=credentials,
		codes=codes,
		notifier=notifier or _notifier(settings),
		orchestrator=orchestrator,
		code_ttl=timedelta(seconds=settings.code_ttl_seconds),
	)

	closers = [credentials.close, ceremonies.close, sessions.close, codes.close]
	# connections close after the stores that use them
	closers = resources.closers + closers

	logger.info(
		f"Services built: sessions={settings.session_backend.value} "
		f"credentials={settings.credential_backend.value}"
	)
	return Services(
		settings=settings,
		orchestrator=orchestrator,
		codes=code_service,
		closers=closers,
	)
