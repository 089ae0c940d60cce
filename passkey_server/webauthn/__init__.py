# (c) Copyright Datacraft, 2026
"""WebAuthn/FIDO2 passkey capability."""

from .service import (
	WebAuthnService,
	WebAuthnCapability,
	CeremonyChallenge,
	VerifiedCredential,
)

__all__ = [
	"WebAuthnService",
	"WebAuthnCapability",
	"CeremonyChallenge",
	"VerifiedCredential",
]
