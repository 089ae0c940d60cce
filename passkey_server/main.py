# (c) Copyright Datacraft, 2026
"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging, get_settings
from .exceptions import Internal, InvalidRequest, PasskeyError
from .routers import code_router, passkey_router
from .wiring import Services, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
	"""Build the service graph on startup unless one was injected; release it on shutdown."""
	owned = getattr(app.state, "services", None) is None
	if owned:
		app.state.services = build_services(app.state.settings)

	yield

	if owned:
		app.state.services.close()
		app.state.services = None


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
	"""Create and configure a FastAPI application instance.

	Args:
		settings: Optional settings override (uses get_settings() if not provided)
		services: Pre-built services; the caller then owns their shutdown

	Returns:
		Configured FastAPI application
	"""
	if settings is None:
		settings = services.settings if services is not None else get_settings()
	configure_logging(settings.log_level)

	app = FastAPI(
		title="Passkey Server",
		description="Passwordless authentication with WebAuthn passkeys",
		version="0.1.0",
		lifespan=lifespan,
	)
	app.state.settings = settings
	app.state.services = services

	app.include_router(passkey_router)
	app.include_router(code_router)

	_register_exception_handlers(app)

	return app


def _register_exception_handlers(app: FastAPI) -> None:
	@app.exception_handler(PasskeyError)
	async def passkey_error_handler(request: Request, exc: PasskeyError) -> JSONResponse:
		if isinstance(exc, Internal):
			logger.error(
				f"{request.method} {request.url.path} failed: {exc.message}",
				exc_info=exc,
			)
		else:
			logger.info(f"{request.method} {request.url.path}: {exc.error_code} {exc.message}")
		return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

	@app.exception_handler(RequestValidationError)
	async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
		error = InvalidRequest(
			"Malformed request",
			details={"errors": [
				{"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
				for err in exc.errors()
			]},
		)
		return JSONResponse(status_code=error.status_code, content=error.to_dict())


def run() -> None:
	"""Console entry point."""
	import uvicorn

	uvicorn.run("passkey_server.main:create_app", factory=True, host="0.0.0.0", port=8080)
