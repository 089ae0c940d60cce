"""Shared fixtures for passkey-server tests."""

import fakeredis
import pytest

from passkey_server.config import CredentialBackend, SessionBackend, Settings
from passkey_server.db.engine import create_tables, make_engine, make_session_factory
from passkey_server.main import create_app
from passkey_server.notifier import ConsoleNotifier
from passkey_server.services import CeremonyOrchestrator, CodeVerificationService
from passkey_server.stores import (
    ConcurrentMemorySessionStore,
    MemoryCredentialStore,
    MemorySessionStore,
    RedisSessionStore,
    SQLCredentialStore,
    SQLSessionStore,
)
from passkey_server.wiring import build_services

from fakes import FakeClock, FakeWebAuthn

SESSION_BACKENDS = ["memory", "concurrent", "redis", "sql"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    """In-process Redis speaking the real command set."""
    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    client.close()


@pytest.fixture
def sql_session_factory(tmp_path):
    """Session factory on a fresh SQLite file."""
    engine = make_engine(f"sqlite:///{tmp_path / 'passkey.db'}")
    create_tables(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture(params=SESSION_BACKENDS)
def make_session_store(request, clock, fake_redis, sql_session_factory):
    """Factory building a session store of the parametrized backend.

    Call it as ``make_session_store(model, namespace)``.
    """
    backend = request.param

    def factory(model, namespace="test"):
        if backend == "memory":
            return MemorySessionStore(clock)
        if backend == "concurrent":
            return ConcurrentMemorySessionStore(clock)
        if backend == "redis":
            return RedisSessionStore(fake_redis, model, namespace, clock)
        return SQLSessionStore(sql_session_factory, model, namespace, clock)

    return factory


@pytest.fixture(params=["memory", "sql"])
def credential_store(request, sql_session_factory):
    if request.param == "memory":
        return MemoryCredentialStore()
    return SQLCredentialStore(sql_session_factory)


@pytest.fixture
def webauthn():
    return FakeWebAuthn()


@pytest.fixture
def notifier():
    return ConsoleNotifier()


@pytest.fixture
def orchestrator(clock, webauthn):
    return CeremonyOrchestrator(
        credentials=MemoryCredentialStore(),
        ceremonies=ConcurrentMemorySessionStore(clock),
        sessions=ConcurrentMemorySessionStore(clock),
        webauthn=webauthn,
        clock=clock,
    )


@pytest.fixture
def code_service(orchestrator, notifier, clock):
    return CodeVerificationService(
        credentials=orchestrator.credentials,
        codes=ConcurrentMemorySessionStore(clock),
        notifier=notifier,
        orchestrator=orchestrator,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_url=f"sqlite:///{tmp_path / 'api.db'}",
        session_backend=SessionBackend.CONCURRENT,
        credential_backend=CredentialBackend.SQL,
        log_level="DEBUG",
    )


@pytest.fixture
def services(settings, webauthn, notifier):
    services = build_services(settings, webauthn=webauthn, notifier=notifier)
    yield services
    services.close()


@pytest.fixture
def app(services):
    return create_app(services=services)
