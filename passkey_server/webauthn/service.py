# (c) Copyright Datacraft, 2026
"""WebAuthn capability: challenge generation and response verification."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from webauthn import (
	generate_authentication_options,
	generate_registration_options,
	options_to_json,
	verify_authentication_response,
	verify_registration_response,
)
from webauthn.helpers import (
	base64url_to_bytes,
	bytes_to_base64url,
)
from webauthn.helpers.structs import (
	AttestationConveyancePreference,
	AuthenticatorSelectionCriteria,
	AuthenticatorTransport,
	COSEAlgorithmIdentifier,
	PublicKeyCredentialDescriptor,
	PublicKeyCredentialType,
	ResidentKeyRequirement,
	UserVerificationRequirement,
)

from passkey_server.exceptions import VerificationFailed
from passkey_server.models import Credential, User

logger = logging.getLogger(__name__)


@dataclass
class CeremonyChallenge:
	"""Options for the browser plus state the server keeps until finish."""
	options: dict[str, Any]
	pending_state: str


@dataclass
class VerifiedCredential:
	"""A credential the capability has verified."""
	credential_id: bytes
	public_key: bytes
	sign_count: int
	transports: list[str] = field(default_factory=list)
	device_type: str | None = None


class WebAuthnCapability(Protocol):
	"""Cryptographic half of the ceremonies. Pending state is opaque to callers."""

	def begin_registration(self, user: User) -> CeremonyChallenge:
		...

	def finish_registration(
		self,
		user: User,
		pending_state: str,
		client_response: dict[str, Any],
	) -> VerifiedCredential:
		...

	def begin_login(self, user: User) -> CeremonyChallenge:
		...

	def finish_login(
		self,
		user: User,
		pending_state: str,
		client_response: dict[str, Any],
	) -> VerifiedCredential:
		...


def _descriptors(credentials: list[Credential]) -> list[PublicKeyCredentialDescriptor]:
	descriptors = []
	for cred in credentials:
		transports = []
		for t in cred.transports:
			try:
				transports.append(AuthenticatorTransport(t))
			except ValueError:
				logger.debug(f"Ignoring unknown transport {t!r}")
		descriptors.append(
			PublicKeyCredentialDescriptor(
				id=cred.id,
				type=PublicKeyCredentialType.PUBLIC_KEY,
				transports=transports or None,
			)
		)
	return descriptors


def _response_transports(client_response: dict[str, Any]) -> list[str]:
	response = client_response.get("response")
	if not isinstance(response, dict):
		return []
	transports = response.get("transports") or []
	return [t for t in transports if isinstance(t, str)]


def _response_credential_id(client_response: dict[str, Any]) -> bytes:
	raw = client_response.get("rawId") or client_response.get("id")
	if not isinstance(raw, str) or not raw:
		raise VerificationFailed("Credential id missing from response")
	try:
		return base64url_to_bytes(raw)
	except ValueError as e:
		raise VerificationFailed("Malformed credential id") from e


class WebAuthnService:
	"""WebAuthn capability on py_webauthn.

	Pending state is a JSON document holding the challenge, the user the
	ceremony was started for, and the user verification requirement.
	The signature counter is not checked here: credential stores compare
	counters so that a regression raises a clone warning instead of failing
	the login.
	"""

	def __init__(
		self,
		rp_id: str = "localhost",
		rp_name: str = "Passkey Server",
		origins: list[str] | None = None,
		timeout: int = 60000,
		user_verification: str = "preferred",
	):
		self.rp_id = rp_id
		self.rp_name = rp_name
		self.origins = origins or ["http://localhost:8080"]
		self.timeout = timeout
		self.user_verification = UserVerificationRequirement(user_verification)

	def begin_registration(self, user: User) -> CeremonyChallenge:
		"""Generate options for passkey registration.

		Args:
			user: User being registered; existing passkeys are excluded

		Returns:
			CeremonyChallenge with creation options and pending state
		"""
		options = generate_registration_options(
			rp_id=self.rp_id,
			rp_name=self.rp_name,
			user_id=user.handle,
			user_name=user.name or user.email,
			user_display_name=user.display_name or user.name or user.email,
			timeout=self.timeout,
			attestation=AttestationConveyancePreference.NONE,
			authenticator_selection=AuthenticatorSelectionCriteria(
				resident_key=ResidentKeyRequirement.PREFERRED,
				user_verification=self.user_verification,
			),
			supported_pub_key_algs=[
				COSEAlgorithmIdentifier.ECDSA_SHA_256,
				COSEAlgorithmIdentifier.EDDSA,
				COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
			],
			exclude_credentials=_descriptors(user.credentials) or None,
		)

		return CeremonyChallenge(
			options=json.loads(options_to_json(options)),
			pending_state=self._pending_state(user, options.challenge),
		)

	def finish_registration(
		self,
		user: User,
		pending_state: str,
		client_response: dict[str, Any],
	) -> VerifiedCredential:
		"""Verify registration response from authenticator.

		Raises:
			VerificationFailed: if the response does not verify
		"""
		pending = self._load_pending(user, pending_state)

		try:
			verification = verify_registration_response(
				credential=client_response,
				expected_challenge=base64url_to_bytes(pending["challenge"]),
				expected_rp_id=self.rp_id,
				expected_origin=self.origins,
				require_user_verification=pending["user_verification"] == "required",
			)
		except Exception as e:
			logger.warning(f"Registration verification failed for user {user.id}: {e}")
			raise VerificationFailed("Registration verification failed") from e

		return VerifiedCredential(
			credential_id=verification.credential_id,
			public_key=verification.credential_public_key,
			sign_count=verification.sign_count,
			transports=_response_transports(client_response),
			device_type=str(verification.credential_device_type.value)
			if verification.credential_device_type else None,
		)

	def begin_login(self, user: User) -> CeremonyChallenge:
		"""Generate options for passkey authentication, limited to the user's passkeys."""
		options = generate_authentication_options(
			rp_id=self.rp_id,
			timeout=self.timeout,
			allow_credentials=_descriptors(user.credentials),
			user_verification=self.user_verification,
		)

		return CeremonyChallenge(
			options=json.loads(options_to_json(options)),
			pending_state=self._pending_state(
				user,
				options.challenge,
				allowed=[bytes_to_base64url(c.id) for c in user.credentials],
			),
		)

	def finish_login(
		self,
		user: User,
		pending_state: str,
		client_response: dict[str, Any],
	) -> VerifiedCredential:
		"""Verify authentication response against the user's stored passkey.

		Raises:
			VerificationFailed: if the credential is unknown or the assertion does not verify
		"""
		pending = self._load_pending(user, pending_state)
		credential_id = _response_credential_id(client_response)

		if bytes_to_base64url(credential_id) not in pending.get("allowed", []):
			raise VerificationFailed("Credential not allowed for this ceremony")
		stored = user.find_credential(credential_id)
		if stored is None:
			raise VerificationFailed("Unknown credential")

		try:
			verification = verify_authentication_response(
				credential=client_response,
				expected_challenge=base64url_to_bytes(pending["challenge"]),
				expected_rp_id=self.rp_id,
				expected_origin=self.origins,
				credential_public_key=stored.public_key,
				credential_current_sign_count=0,
				require_user_verification=pending["user_verification"] == "required",
			)
		except Exception as e:
			logger.warning(f"Authentication verification failed for user {user.id}: {e}")
			raise VerificationFailed("Authentication verification failed") from e

		return VerifiedCredential(
			credential_id=credential_id,
			public_key=stored.public_key,
			sign_count=verification.new_sign_count,
			transports=stored.transports,
			device_type=stored.device_type,
		)

	def _pending_state(
		self,
		user: User,
		challenge: bytes,
		allowed: list[str] | None = None,
	) -> str:
		state: dict[str, Any] = {
			"challenge": bytes_to_base64url(challenge),
			"user_id": user.id,
			"user_verification": self.user_verification.value,
		}
		if allowed is not None:
			state["allowed"] = allowed
		return json.dumps(state)

	def _load_pending(self, user: User, pending_state: str) -> dict[str, Any]:
		try:
			pending = json.loads(pending_state)
		except ValueError as e:
			raise VerificationFailed("Corrupt ceremony state") from e
		if pending.get("user_id") != user.id:
			raise VerificationFailed("Ceremony state belongs to another user")
		return pending
