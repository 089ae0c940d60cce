# (c) Copyright Datacraft, 2026
"""Authentication services."""
from .ceremony import CeremonyOrchestrator, CeremonyStart, CeremonyResult, IssuedSession
from .verification import CodeVerificationService

__all__ = [
	"CeremonyOrchestrator",
	"CeremonyStart",
	"CeremonyResult",
	"IssuedSession",
	"CodeVerificationService",
]
