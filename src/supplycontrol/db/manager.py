"""Database connection manager with SQLite WAL mode support."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from supplycontrol.db.base import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages database connections and sessions for the registry store."""

    def __init__(
        self,
        database_url: str = "sqlite:///data/supplycontrol.db",
        echo: bool = False,
    ) -> None:
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL ("sqlite://" for in-memory)
            echo: Enable SQL echo logging
        """
        self._database_url = database_url
        self._echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def is_sqlite(self) -> bool:
        return self._database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        """Create a new SQLAlchemy engine."""
        if not self.is_sqlite:
            return create_engine(self._database_url, echo=self._echo, pool_pre_ping=True)

        db_path = self._database_url.replace("sqlite:///", "", 1)
        in_memory = self._database_url in ("sqlite://", "sqlite:///:memory:")

        if in_memory:
            # One shared connection, otherwise each checkout sees an empty database
            engine = create_engine(
                self._database_url,
                echo=self._echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                self._database_url,
                echo=self._echo,
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
            )

        self._configure_sqlite_pragmas(engine, wal=not in_memory)
        return engine

    def _configure_sqlite_pragmas(self, engine: Engine, wal: bool) -> None:
        """Configure SQLite pragmas: foreign keys always, WAL for files."""

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record) -> None:  # type: ignore
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if wal:
                cursor.execute("PRAGMA journal_mode=WAL")
                # Durable enough with WAL; every registry change is a single commit
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        logger.debug("SQLite pragmas configured")

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session that commits on success and rolls back on error.

        Usage:
            with db_manager.get_session() as session:
                session.query(SupplyControllerRow).all()
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created/verified")

    def drop_db(self) -> None:
        """Drop all tables. Use with caution!"""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("All database tables dropped")

    def health_check(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self) -> None:
        """Close the database engine and release resources."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")
