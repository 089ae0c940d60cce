# (c) Copyright Datacraft, 2026
"""Error taxonomy shared by stores, services and the HTTP layer."""
from typing import Any


class PasskeyError(Exception):
	"""Base exception for all passkey server errors."""

	error_code = "internal"
	status_code = 500

	def __init__(self, message: str, details: dict[str, Any] | None = None):
		"""Initialize passkey error.

		Args:
			message: Human-readable error message
			details: Optional additional error details
		"""
		super().__init__(message)
		self.message = message
		self.details = details or {}

	def to_dict(self) -> dict[str, Any]:
		"""Convert error to dictionary for API responses."""
		result: dict[str, Any] = {
			"error": self.error_code,
			"message": self.message,
		}
		if self.details:
			result["details"] = self.details
		return result


class InvalidRequest(PasskeyError):
	"""Malformed request body or unusable verification code."""
	error_code = "invalid_request"
	status_code = 400


class NotFound(PasskeyError):
	"""User, session or code is absent."""
	error_code = "not_found"
	status_code = 404


class Expired(PasskeyError):
	"""Ceremony token expired or was already used."""
	error_code = "expired"
	status_code = 410


class Conflict(PasskeyError):
	"""Duplicate email or credential, or a lost consume race."""
	error_code = "conflict"
	status_code = 409


class VerificationFailed(PasskeyError):
	"""The WebAuthn capability rejected the ceremony."""
	error_code = "verification_failed"
	status_code = 400


class Unauthorized(PasskeyError):
	"""Missing or expired session on a protected operation."""
	error_code = "unauthorized"
	status_code = 401


class Internal(PasskeyError):
	"""Store or notifier failure. Never echoed to clients."""
	error_code = "internal"
	status_code = 500

	def to_dict(self) -> dict[str, Any]:
		return {"error": self.error_code, "message": "Internal server error"}
