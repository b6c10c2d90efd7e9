from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


DEFAULT_SQLITE_URL = "sqlite:///./form_persistence.sqlite3"


def make_engine(db_url: str = DEFAULT_SQLITE_URL):
    if db_url.startswith("sqlite:"):
        # Stores hop between worker threads; an in-memory database must keep
        # a single shared connection or every thread sees an empty schema.
        if ":memory:" in db_url or db_url.rstrip("/") == "sqlite:":
            return create_engine(
                db_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            db_url, future=True, connect_args={"check_same_thread": False}
        )
    return create_engine(db_url, future=True)


def make_session_factory(engine):
    return sessionmaker(
        bind=engine, autoflush=False, future=True
    )
