# (c) Copyright Datacraft, 2026
"""Domain models for users, credentials and short-lived session values."""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from uuid_extensions import uuid7str


def utc_now() -> datetime:
	return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
	return email.strip().lower()


class Credential(BaseModel):
	"""A public-key credential bound to one user."""
	id: bytes  # raw credential id
	public_key: bytes  # COSE key, opaque here
	sign_count: int = 0
	clone_warning: bool = False
	transports: list[str] = []
	label: str = ""
	device_type: str | None = None
	created_at: datetime = Field(default_factory=utc_now)
	updated_at: datetime | None = None

	model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
	"""A registered user. `id` doubles as the WebAuthn user handle."""
	id: str = Field(default_factory=uuid7str)
	email: str
	name: str = ""
	display_name: str = ""
	credentials: list[Credential] = []
	created_at: datetime = Field(default_factory=utc_now)
	is_active: bool = True
	is_deleted: bool = False

	model_config = ConfigDict(from_attributes=True)

	@property
	def handle(self) -> bytes:
		return self.id.encode()

	def find_credential(self, credential_id: bytes) -> Credential | None:
		for cred in self.credentials:
			if cred.id == credential_id:
				return cred
		return None


class CeremonyKind(str, Enum):
	REGISTRATION = "registration"
	LOGIN = "login"


class CeremonyState(BaseModel):
	"""Pending ceremony, stored under a ceremony token."""
	kind: CeremonyKind
	user_id: str
	pending_state: str
	created_at: datetime = Field(default_factory=utc_now)


class AuthSession(BaseModel):
	"""Authenticated session, stored under a session token."""
	user_id: str
	created_at: datetime = Field(default_factory=utc_now)
	expires_at: datetime


class CodePurpose(str, Enum):
	SIGNUP = "signup"
	LOGIN = "login"


class PendingCode(BaseModel):
	"""Verification code payload, stored under the code itself."""
	purpose: CodePurpose
	email: str
	name: str = ""
	display_name: str = ""
	user_id: str | None = None
