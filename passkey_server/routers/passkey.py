# (c) Copyright Datacraft, 2026
"""WebAuthn/Passkey API endpoints."""
from fastapi import APIRouter, Depends, Request, Response
from webauthn.helpers import base64url_to_bytes

from passkey_server import schema
from passkey_server.exceptions import InvalidRequest, NotFound
from passkey_server.services import CeremonyOrchestrator, CeremonyStart, IssuedSession
from passkey_server.utils import (
	CEREMONY_HEADER,
	SESSION_HEADER,
	get_ceremony_token,
	get_orchestrator,
	get_services,
	get_session_token,
)

router = APIRouter(tags=["Passkeys"])


def _ceremony_response(response: Response, start: CeremonyStart) -> schema.CeremonyStartResponse:
	response.headers[CEREMONY_HEADER] = start.token
	return schema.CeremonyStartResponse(
		token=start.token,
		options=start.options,
		expires_at=start.expires_at,
	)


def set_session(request: Request, response: Response, session: IssuedSession) -> None:
	"""Hand the session token to the client as header and cookie."""
	settings = get_services(request).settings
	response.headers[SESSION_HEADER] = session.token
	response.set_cookie(
		settings.cookie_name,
		session.token,
		max_age=settings.session_ttl_seconds,
		httponly=True,
		secure=settings.cookie_secure,
		samesite="lax",
	)


@router.post("/register/start", response_model=schema.CeremonyStartResponse)
def register_start(
	body: schema.RegisterStartRequest,
	response: Response,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.CeremonyStartResponse:
	"""Start passkey registration (creates the user on first use)."""
	start = orchestrator.begin_registration(body.email, body.name, body.display_name)
	return _ceremony_response(response, start)


@router.post("/register/finish", response_model=schema.SessionResponse)
def register_finish(
	body: schema.CeremonyFinishRequest,
	request: Request,
	response: Response,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.SessionResponse:
	"""Complete passkey registration."""
	result = orchestrator.finish_registration(
		get_ceremony_token(request, body.token),
		body.credential,
		label=request.headers.get("User-Agent", ""),
		email=body.email,
	)
	set_session(request, response, result.session)
	return schema.SessionResponse(
		session_token=result.session.token,
		user_id=result.user.id,
		expires_at=result.session.expires_at,
	)


@router.post("/login/start", response_model=schema.CeremonyStartResponse)
def login_start(
	body: schema.LoginStartRequest,
	response: Response,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.CeremonyStartResponse:
	"""Start passkey login."""
	start = orchestrator.begin_login(body.email)
	return _ceremony_response(response, start)


@router.post("/login/finish", response_model=schema.SessionResponse)
def login_finish(
	body: schema.CeremonyFinishRequest,
	request: Request,
	response: Response,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.SessionResponse:
	"""Complete passkey login."""
	result = orchestrator.finish_login(
		get_ceremony_token(request, body.token),
		body.credential,
		label=request.headers.get("User-Agent", ""),
		email=body.email,
	)
	set_session(request, response, result.session)
	return schema.SessionResponse(
		session_token=result.session.token,
		user_id=result.user.id,
		expires_at=result.session.expires_at,
		clone_warning=result.clone_warning,
	)


@router.post("/logout", response_model=schema.MessageResponse)
def logout(
	request: Request,
	response: Response,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.MessageResponse:
	orchestrator.logout(get_session_token(request))
	response.delete_cookie(get_services(request).settings.cookie_name)
	return schema.MessageResponse(message="Logged out")


@router.get("/me", response_model=schema.UserProfile)
def me(
	request: Request,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.UserProfile:
	"""Return the profile of the session's user."""
	user = orchestrator.current_user(get_session_token(request))
	return schema.UserProfile(
		id=user.id,
		email=user.email,
		name=user.name,
		display_name=user.display_name,
		created_at=user.created_at,
		credential_count=len(user.credentials),
	)


@router.get("/credentials", response_model=schema.CredentialLabelsResponse)
def list_credentials(
	email: str,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.CredentialLabelsResponse:
	"""List passkey labels registered for an email."""
	return schema.CredentialLabelsResponse(labels=orchestrator.list_credential_labels(email))


@router.delete("/credentials/{credential_id}", response_model=schema.MessageResponse)
def remove_credential(
	credential_id: str,
	request: Request,
	orchestrator: CeremonyOrchestrator = Depends(get_orchestrator),
) -> schema.MessageResponse:
	"""Remove one of the session user's passkeys (base64url credential id)."""
	try:
		raw_id = base64url_to_bytes(credential_id)
	except ValueError as e:
		raise InvalidRequest("Malformed credential id") from e

	if not orchestrator.remove_credential(get_session_token(request), raw_id):
		raise NotFound("Passkey not found")
	return schema.MessageResponse(message="Passkey removed")
