# (c) Copyright Datacraft, 2026
"""Code-based signup and login endpoints."""
from fastapi import APIRouter, Depends, Request, Response

from passkey_server import schema
from passkey_server.services import CodeVerificationService
from passkey_server.utils import get_code_service

from .passkey import set_session

router = APIRouter(tags=["Verification codes"])


@router.post("/signup/start", response_model=schema.MessageResponse)
def signup_start(
	body: schema.SignupStartRequest,
	service: CodeVerificationService = Depends(get_code_service),
) -> schema.MessageResponse:
	service.begin_signup(body.email, body.name, body.display_name)
	return schema.MessageResponse(message="Verification code sent to email")


@router.post("/signup/finish", response_model=schema.MessageResponse)
def signup_finish(
	body: schema.CodeFinishRequest,
	service: CodeVerificationService = Depends(get_code_service),
) -> schema.MessageResponse:
	service.finish_signup(body.email, body.code)
	return schema.MessageResponse(message="Signup successful")


@router.post("/login-with-code/start", response_model=schema.MessageResponse)
def login_with_code_start(
	body: schema.CodeLoginStartRequest,
	service: CodeVerificationService = Depends(get_code_service),
) -> schema.MessageResponse:
	service.begin_login(body.email)
	return schema.MessageResponse(message="Login verification code sent to email")


@router.post("/login-with-code/finish", response_model=schema.SessionResponse)
def login_with_code_finish(
	body: schema.CodeFinishRequest,
	request: Request,
	response: Response,
	service: CodeVerificationService = Depends(get_code_service),
) -> schema.SessionResponse:
	session = service.finish_login(body.email, body.code)
	set_session(request, response, session)
	return schema.SessionResponse(
		session_token=session.token,
		user_id=session.user_id,
		expires_at=session.expires_at,
	)
