# (c) Copyright Datacraft, 2026
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession

from .base import Base


def make_engine(db_url: str, **kwargs) -> Engine:
	"""Create an engine; SQLite connections are shared across worker threads."""
	if db_url.startswith("sqlite"):
		connect_args = kwargs.pop("connect_args", {})
		connect_args.setdefault("check_same_thread", False)
		kwargs["connect_args"] = connect_args
	return create_engine(db_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[SQLAlchemySession]:
	return sessionmaker(engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
	Base.metadata.create_all(engine)
