# (c) Copyright Datacraft, 2026
from fastapi import Request
from fastapi.security.utils import get_authorization_scheme_param

from .services import CeremonyOrchestrator, CodeVerificationService
from .wiring import Services

CEREMONY_HEADER = "X-Ceremony-Token"
SESSION_HEADER = "sid"


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(request: Request) -> CeremonyOrchestrator:
    return get_services(request).orchestrator


def get_code_service(request: Request) -> CodeVerificationService:
    return get_services(request).codes


def from_header(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    scheme, token = get_authorization_scheme_param(authorization)

    if not authorization or scheme.lower() != "bearer":
        return None

    return token


def from_cookie(request: Request) -> str | None:
    cookie_name = get_services(request).settings.cookie_name
    return request.cookies.get(cookie_name, None)


def get_session_token(request: Request) -> str | None:
    return (
        from_cookie(request)
        or request.headers.get(SESSION_HEADER)
        or from_header(request)
    )


def get_ceremony_token(request: Request, body_token: str | None) -> str | None:
    return body_token or request.headers.get(CEREMONY_HEADER)
