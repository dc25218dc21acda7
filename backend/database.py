"""Engine, session factory and the ``get_db`` request dependency."""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)

# Milliseconds SQLite waits on a locked database. The API process and the
# cron maintenance script write rate-limit windows to the same file.
SQLITE_BUSY_TIMEOUT_MS = 5000


class Base(DeclarativeBase):
    pass


def _attach_sqlite_pragmas(engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()


@lru_cache
def get_engine():
    """Build the engine for ``settings.DATABASE_URL`` once per process.

    SQLite runs in WAL mode with the same-thread check off, since
    FastAPI serves sync routes from a thread pool. Other backends get
    ``pool_pre_ping``.
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        _attach_sqlite_pragmas(engine)
    else:
        engine = create_engine(url, pool_pre_ping=True)
    logger.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def get_session_local():
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """Yield a session for one request, rolling back if the handler raises.

    Services ``flush()`` and routes ``commit()``, except where a write has
    to survive a later failure in the same request:

    - ``ConnectionService.handle_callback()`` commits the consumed state
      before exchanging the code
    - ``DispatchService`` commits the pending run before posting to the
      workflow engine
    - ``TokenRefreshService`` commits each connection as it is refreshed
      or health-checked
    """
    db = get_session_local()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
