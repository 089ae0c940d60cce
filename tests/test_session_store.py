"""Unit tests for session store backends.

Every backend is exercised through the same contract:
- create/get/consume/delete
- expiry decided on read, whether or not the backend purged the entry
- single-use consume under concurrency
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from passkey_server.exceptions import Internal
from passkey_server.models import CeremonyKind, CeremonyState, PendingCode, CodePurpose
from passkey_server.stores import RedisSessionStore, counter_regressed, generate_token
from passkey_server.stores import cache as cache_module

TTL = timedelta(minutes=5)


def _state(user_id: str = "user-1") -> CeremonyState:
    return CeremonyState(kind=CeremonyKind.LOGIN, user_id=user_id, pending_state='{"challenge": "abc"}')


class TestSessionStoreContract:
    """Behaviour shared by all backends."""

    def test_get_returns_stored_value(self, make_session_store):
        store = make_session_store(CeremonyState)
        value = _state()
        token = store.create(value, TTL)

        assert store.get(token) == value
        # get does not remove
        assert store.get(token) == value

    def test_consume_is_single_use(self, make_session_store):
        store = make_session_store(CeremonyState)
        token = store.create(_state(), TTL)

        assert store.consume(token) == _state()
        assert store.consume(token) is None
        assert store.get(token) is None

    def test_unknown_token_is_absent(self, make_session_store):
        store = make_session_store(CeremonyState)

        assert store.get("no-such-token") is None
        assert store.consume("no-such-token") is None

    def test_delete_removes_and_tolerates_unknown(self, make_session_store):
        store = make_session_store(CeremonyState)
        token = store.create(_state(), TTL)

        store.delete(token)
        store.delete(token)

        assert store.get(token) is None

    def test_expired_entry_is_absent(self, make_session_store, clock):
        store = make_session_store(CeremonyState)
        token = store.create(_state(), TTL)

        clock.advance(minutes=4, seconds=59)
        assert store.get(token) is not None

        clock.advance(seconds=1)
        assert store.get(token) is None
        assert store.consume(token) is None

    def test_tokens_are_distinct_and_url_safe(self, make_session_store):
        store = make_session_store(CeremonyState)
        tokens = {store.create(_state(), TTL) for _ in range(50)}

        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert all(c.isalnum() or c in "-_" for c in token)

    def test_stored_value_is_isolated_from_caller(self, make_session_store):
        store = make_session_store(PendingCode)
        value = PendingCode(purpose=CodePurpose.SIGNUP, email="a@example.com")
        token = store.create(value, TTL)

        value.email = "changed@example.com"

        assert store.get(token).email == "a@example.com"

    def test_concurrent_consume_has_one_winner(self, make_session_store):
        store = make_session_store(CeremonyState)
        token = store.create(_state(), TTL)
        workers = 8
        barrier = threading.Barrier(workers)

        def consume():
            barrier.wait()
            return store.consume(token)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: consume(), range(workers)))

        assert sum(r is not None for r in results) == 1


class TestNamespaces:
    """Stores sharing one backend do not see each other's tokens."""

    @pytest.mark.parametrize("make_session_store", ["redis", "sql"], indirect=True)
    def test_namespaces_are_isolated(self, make_session_store):
        ceremonies = make_session_store(CeremonyState, "ceremony")
        codes = make_session_store(CeremonyState, "code")
        token = ceremonies.create(_state(), TTL)

        assert codes.get(token) is None
        assert codes.consume(token) is None
        assert ceremonies.consume(token) is not None


class TestRedisSessionStore:
    def test_uses_native_ttl_and_prefix(self, fake_redis, clock):
        store = RedisSessionStore(fake_redis, CeremonyState, "passkey_session", clock)
        token = store.create(_state(), TTL)

        key = f"passkey_session:{token}"
        assert fake_redis.exists(key) == 1
        assert 0 < fake_redis.ttl(key) <= TTL.total_seconds()

    def test_consume_removes_key(self, fake_redis, clock):
        store = RedisSessionStore(fake_redis, CeremonyState, "passkey_session", clock)
        token = store.create(_state(), TTL)

        store.consume(token)

        assert fake_redis.dbsize() == 0

    def test_create_never_overwrites_a_live_key(self, fake_redis, clock, monkeypatch):
        store = RedisSessionStore(fake_redis, CeremonyState, "passkey_session", clock)
        taken = store.create(_state("first"), TTL)
        tokens = iter([taken, "fresh-token"])
        monkeypatch.setattr(cache_module, "generate_token", lambda: next(tokens))

        token = store.create(_state("second"), TTL)

        assert token == "fresh-token"
        assert store.get(taken).user_id == "first"

    def test_connection_failure_raises_internal(self, fake_redis, redis_server, clock):
        store = RedisSessionStore(fake_redis, CeremonyState, "passkey_session", clock)
        redis_server.connected = False

        with pytest.raises(Internal):
            store.create(_state(), TTL)
        with pytest.raises(Internal):
            store.consume("token")

    def test_corrupt_entry_raises_internal(self, fake_redis, clock):
        store = RedisSessionStore(fake_redis, CeremonyState, "passkey_session", clock)
        fake_redis.set("passkey_session:bad", "not json")

        with pytest.raises(Internal):
            store.get("bad")


class TestHelpers:
    def test_generate_token_has_256_bits(self):
        # 32 bytes base64url-encoded without padding
        assert len(generate_token()) == 43

    @pytest.mark.parametrize(
        "stored,incoming,regressed",
        [
            (0, 0, False),
            (0, 1, False),
            (5, 6, False),
            (5, 5, True),
            (5, 3, True),
            (5, 0, True),
        ],
    )
    def test_counter_regressed(self, stored, incoming, regressed):
        assert counter_regressed(stored, incoming) is regressed
