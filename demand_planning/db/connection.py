from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker, scoped_session

from demand_planning.config import config
from demand_planning.exceptions import DatabaseError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)

# Dialects whose INSERT supports ON CONFLICT
_UPSERT_DIALECTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert
}

def dialect_insert(session, model):
    """INSERT construct with on_conflict_do_update / on_conflict_do_nothing.

    Raises:
        DatabaseError: If the bound database has no ON CONFLICT support
    """
    dialect_name = session.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect_name)
    if insert is None:
        raise DatabaseError(f"Upserts are not supported on {dialect_name}")
    return insert(model)

def enable_sqlite_savepoints(engine):
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite."""

    @event.listens_for(engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin(connection):
        connection.exec_driver_sql('BEGIN')

    return engine

class Database:
    """Database connection manager for the Demand Planning Engine.

    The engine is created lazily on first use, so importing this module never
    opens a connection.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the connection manager if not already initialized."""
        if self._initialized:
            return

        self._engine = None
        self._session_factory = None
        self._session = None
        self._initialized = True

    def initialize(self, connection_string: Optional[str] = None):
        """Initialize database connection.

        Args:
            connection_string: Optional database connection string.
                              If not provided, will use configuration.
        """
        if connection_string is None:
            connection_string = config.get_db_url()

        echo = config.get_boolean('DATABASE', 'echo', False)

        engine_kwargs = {'echo': echo}
        if not connection_string.startswith('sqlite'):
            engine_kwargs.update(
                pool_size=config.get_int('DATABASE', 'pool_size', 10),
                max_overflow=config.get_int('DATABASE', 'max_overflow', 20),
                pool_timeout=config.get_int('DATABASE', 'pool_timeout', 30),
                pool_recycle=config.get_int('DATABASE', 'pool_recycle', 1800)
            )

        try:
            self._engine = create_engine(connection_string, **engine_kwargs)
        except Exception as e:
            raise DatabaseError(f"Failed to create database engine: {str(e)}")

        if self._engine.dialect.name == 'sqlite':
            enable_sqlite_savepoints(self._engine)

        self._session_factory = sessionmaker(bind=self._engine)
        self._session = scoped_session(self._session_factory)
        logger.info(f"Database engine initialized ({self._engine.dialect.name})")

    def create_all_tables(self):
        """Create all tables defined in the models."""
        from demand_planning.models import Base
        Base.metadata.create_all(self.engine)

    def drop_all_tables(self):
        """Drop all tables from the database."""
        from demand_planning.models import Base
        Base.metadata.drop_all(self.engine)

    def test_connection(self) -> bool:
        """Run a trivial query against the database."""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {str(e)}")
            return False

    @property
    def session(self):
        """Get the current database session factory."""
        if self._session is None:
            self.initialize()
        return self._session

    @property
    def engine(self):
        """Get the database engine."""
        if self._engine is None:
            self.initialize()
        return self._engine

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

# Global database instance
db = Database()

def session_scope():
    """Transactional session scope on the global database."""
    return db.session_scope()
