import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_store_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO):
    """
    Build the engine. SQLite connections open every transaction with
    BEGIN IMMEDIATE so concurrent writers serialize on the database lock
    instead of failing late on upgrade.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class Store:
    """Transactional store shared by every core operation."""

    def __init__(self, url: str = None, engine=None):
        self.engine = engine if engine is not None else create_store_engine(url or DATABASE_URL)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Store bound to {self.engine.url.render_as_string(hide_password=True)}")

    @property
    def supports_row_locks(self) -> bool:
        return self.engine.dialect.name != "sqlite"

    def create_all(self) -> None:
        # Import for side effect: registers the tables on Base.metadata
        from . import tables  # noqa: F401
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self):
        """One unit of work: commit on success, roll back on any error."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
