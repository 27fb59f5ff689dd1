import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from voicemail_log.errors import ConstraintViolation, StorageUnavailable

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("accounts", "voicemails")


def _make_engine(url: str, echo: bool = False) -> Engine:
    """
    Build an engine with per-dialect settings.

    SQLite needs check_same_thread=False to be shared with FastAPI's threadpool,
    and foreign keys switched on per connection so the voicemails -> accounts
    cascade is enforced.
    """
    is_sqlite = url.startswith("sqlite")
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


class Database:
    """
    Storage client: owns the engine and the session factory.

    Constructed once per application (see main.create_app) and handed to every
    component that needs the database.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = _make_engine(url, echo=echo)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Yield a session that commits on success and rolls back on error.
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def check_health(self) -> bool:
        """
        Check if the database is reachable and schema is applied.

        Returns:
            True if DB is healthy and both tables exist, False otherwise.
        """
        logger.debug("Checking database health...")
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                tables = set(inspect(conn).get_table_names())
            missing = [name for name in REQUIRED_TABLES if name not in tables]
            if missing:
                logger.error(f"Database schema not applied: missing tables {missing}")
                return False
            logger.debug("Database health check passed")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


@contextmanager
def translate_errors(operation: str) -> Generator[None, None, None]:
    """
    Re-raise SQLAlchemy failures as StorageError subclasses.

    Integrity errors become ConstraintViolation; everything else raised by
    SQLAlchemy becomes StorageUnavailable.
    """
    try:
        yield
    except IntegrityError as e:
        logger.error(f"Constraint violation during {operation}: {e.orig}")
        raise ConstraintViolation(f"{operation} violated a constraint") from e
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {e}")
        raise StorageUnavailable(f"{operation} failed: storage unavailable") from e


class SchemaManager:
    """Creates the accounts and voicemails tables if they are missing."""

    def __init__(self, db: Database):
        self.db = db

    def ensure_schema(self) -> None:
        """
        Create-if-absent for every table; safe to call on each start.
        Failures propagate to the caller, there is no retry.
        """
        logger.debug(f"Ensuring schema on {self.db.engine.url.render_as_string(hide_password=True)}")
        # Import models to register them with Base.metadata
        from voicemail_log import models  # noqa: F401

        with translate_errors("ensure_schema"):
            Base.metadata.create_all(bind=self.db.engine, checkfirst=True)
        logger.info("Database schema ensured")
