import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

load_dotenv()
# Repository root; relative SQLite paths in DB_URL are resolved against it.
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)

# Seconds a SQLite writer waits for the database lock before failing.
SQLITE_BUSY_TIMEOUT = 30


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create the engine every component shares.

    For SQLite, foreign keys are switched on per connection and connections
    may be used from the worker threads of concurrent request handlers;
    writers queue on the database lock for up to ``SQLITE_BUSY_TIMEOUT``.
    """
    url = database_url or DEFAULT_SQLITE_URL
    is_sqlite = url.startswith("sqlite")
    connect_args = (
        {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {}
    )
    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    # Results are returned after commit, so keep their attributes loaded.
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
