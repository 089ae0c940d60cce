# (c) Copyright Datacraft, 2026
"""Relational layout for users, credentials and sessions."""
from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
	String, ForeignKey, Index, Boolean, Integer, Text, LargeBinary, JSON,
	DateTime,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passkey_server.models import utc_now

from .base import Base


def as_utc(value: datetime) -> datetime:
	"""SQLite hands back naive datetimes; everything stored here is UTC."""
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


class User(Base):
	__tablename__ = "user"

	id: Mapped[str] = mapped_column(String(36), primary_key=True)
	email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
	name: Mapped[str] = mapped_column(String(255), default="")
	display_name: Mapped[str] = mapped_column(String(255), default="")
	created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
	is_active: Mapped[bool] = mapped_column(Boolean, default=True)
	is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)

	credentials: Mapped[List["UserCredential"]] = relationship(
		"UserCredential",
		back_populates="user",
		cascade="all, delete-orphan",
		order_by="UserCredential.created",
	)

	def __repr__(self):
		return f"User({self.id}: {self.email})"


class UserCredential(Base):
	__tablename__ = "user_credential"

	# base64url of the raw credential id
	id: Mapped[str] = mapped_column(String(1024), primary_key=True)
	user_id: Mapped[str] = mapped_column(
		ForeignKey("user.id", ondelete="CASCADE"),
		nullable=False,
	)
	public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
	sign_count: Mapped[int] = mapped_column(Integer, default=0)
	clone_warning: Mapped[bool] = mapped_column(Boolean, default=False)
	transports: Mapped[list] = mapped_column(JSON, default=list)
	label: Mapped[str] = mapped_column(String(512), default="")
	device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
	created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
	updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

	user: Mapped["User"] = relationship("User", back_populates="credentials")

	__table_args__ = (
		Index("idx_user_credential_user", "user_id"),
	)


class UserSession(Base):
	__tablename__ = "user_session"

	token: Mapped[str] = mapped_column(String(128), primary_key=True)
	kind: Mapped[str] = mapped_column(String(32), nullable=False)
	user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
	data: Mapped[str] = mapped_column(Text, nullable=False)
	created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
	expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

	__table_args__ = (
		Index("idx_user_session_kind_expires", "kind", "expires"),
	)
