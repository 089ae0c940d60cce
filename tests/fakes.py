"""Test doubles for the WebAuthn capability, the clock and notifiers."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passkey_server.exceptions import Internal, VerificationFailed
from passkey_server.models import User
from passkey_server.webauthn import CeremonyChallenge, VerifiedCredential


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeWebAuthn:
    """Accepts any response that names a credential; rejects ones marked ``fail``.

    Client responses look like ``{"id": <base64url>, "sign_count": 3}``.
    """

    def __init__(self):
        self.challenges = 0

    def begin_registration(self, user: User) -> CeremonyChallenge:
        return self._challenge(user, "registration")

    def finish_registration(self, user, pending_state, client_response) -> VerifiedCredential:
        self._check(user, pending_state, client_response)
        return VerifiedCredential(
            credential_id=base64url_to_bytes(client_response["id"]),
            public_key=b"public-key-" + client_response["id"].encode(),
            sign_count=client_response.get("sign_count", 0),
            transports=["internal"],
            device_type="single_device",
        )

    def begin_login(self, user: User) -> CeremonyChallenge:
        return self._challenge(user, "login")

    def finish_login(self, user, pending_state, client_response) -> VerifiedCredential:
        self._check(user, pending_state, client_response)
        stored = user.find_credential(base64url_to_bytes(client_response["id"]))
        if stored is None:
            raise VerificationFailed("Unknown credential")
        return VerifiedCredential(
            credential_id=stored.id,
            public_key=stored.public_key,
            sign_count=client_response.get("sign_count", 0),
        )

    def _challenge(self, user: User, kind: str) -> CeremonyChallenge:
        self.challenges += 1
        challenge = f"challenge-{self.challenges}"
        return CeremonyChallenge(
            options={"challenge": challenge, "kind": kind},
            pending_state=json.dumps({"user_id": user.id, "challenge": challenge}),
        )

    def _check(self, user: User, pending_state: str, client_response: dict[str, Any]) -> None:
        if json.loads(pending_state)["user_id"] != user.id:
            raise VerificationFailed("Ceremony state belongs to another user")
        if client_response.get("fail") or "id" not in client_response:
            raise VerificationFailed("Rejected by authenticator")


def credential_response(raw_id: bytes, sign_count: int = 0, fail: bool = False) -> dict[str, Any]:
    return {"id": bytes_to_base64url(raw_id), "sign_count": sign_count, "fail": fail}



class FailingNotifier:
    """Notifier whose delivery always fails."""

    def __init__(self):
        self.attempts: list[tuple[str, str, str]] = []

    def send(self, recipient: str, subject: str, body: str) -> None:
        self.attempts.append((recipient, subject, body))
        raise Internal("Notification delivery failed")


def sent_code(body: str) -> str:
    """Pull the code out of a notification body."""
    return body.rsplit(": ", 1)[1]
