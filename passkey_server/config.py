# (c) Copyright Datacraft, 2026
import logging

from functools import lru_cache
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class SessionBackend(str, Enum):
    MEMORY = "memory"
    CONCURRENT = "concurrent"
    REDIS = "redis"
    SQL = "sql"


class CredentialBackend(str, Enum):
    MEMORY = "memory"
    SQL = "sql"


class NotifierKind(str, Enum):
    CONSOLE = "console"
    SMTP = "smtp"


class Settings(BaseSettings):
    db_url: str = "sqlite:///./passkey.db"
    redis_url: str = "redis://localhost:6379/0"

    session_backend: SessionBackend = SessionBackend.CONCURRENT
    credential_backend: CredentialBackend = CredentialBackend.SQL

    # WebAuthn/Passkey settings
    webauthn_rp_id: str = Field(default="localhost", description="Relying Party ID (domain)")
    webauthn_rp_name: str = Field(default="Passkey Server", description="Relying Party display name")
    webauthn_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:8080"],
        description="Origins accepted in client data",
    )
    webauthn_timeout: int = Field(default=60000, description="WebAuthn timeout in ms")
    webauthn_user_verification: str = Field(default="preferred")

    # Lifetimes
    ceremony_ttl_seconds: int = Field(gt=0, default=300)
    session_ttl_seconds: int = Field(gt=0, default=3600)
    code_ttl_seconds: int = Field(gt=0, default=600)

    cookie_name: str = "sid"
    cookie_secure: bool = False

    # Notifier settings
    notifier: NotifierKind = NotifierKind.CONSOLE
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "no-reply@localhost"
    smtp_starttls: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix='pk_')


@lru_cache()
def get_settings():
    return Settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.debug("Logging configured at %s", level)
