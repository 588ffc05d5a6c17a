import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator, Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

load_dotenv()


def resolve_database_url(raw_url: str | None) -> Tuple[URL, Dict[str, Any]]:
    """Normalize the DATABASE_URL environment variable for SQLAlchemy.

    The hosted store is Postgres behind SSL. Plain postgres URLs are upgraded
    to the psycopg driver and get sslmode=require when it is absent. Without a
    URL a local SQLite file is used.
    """
    if not raw_url:
        return make_url("sqlite:///./marketplace_webhooks.db"), {"check_same_thread": False}

    url = make_url(raw_url)

    if url.drivername.startswith("sqlite"):
        return url, {"check_same_thread": False}

    if url.drivername in {"postgres", "postgresql"}:
        url = url.set(drivername="postgresql+psycopg")

    query = dict(url.query)
    if "sslmode" not in query and url.drivername.startswith("postgresql"):
        query["sslmode"] = "require"
        url = url.set(query=query)

    return url, {}


def _create_engine() -> Engine:
    url, connect_args = resolve_database_url(os.getenv("DATABASE_URL"))
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)
Base = declarative_base()


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request-scoped session."""
    return SessionLocal


@contextmanager
def db_session(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
