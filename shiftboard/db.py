from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///./shiftboard.db"


def get_database_url() -> str:
    """Read ``DATABASE_URL`` and pin bare postgres URLs to the psycopg 3 driver."""
    raw_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    scheme, sep, rest = raw_url.partition("://")
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+psycopg{sep}{rest}"
    return raw_url


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str) -> Engine:
    # Request handlers and the store share connections across threads.
    connect_args = {"check_same_thread": False} if is_sqlite(url) else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


DATABASE_URL = get_database_url()
engine = build_engine(DATABASE_URL)
SessionLocal = build_session_factory(engine)
Base = declarative_base()
