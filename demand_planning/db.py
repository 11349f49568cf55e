from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool

from demand_planning.config import config
from demand_planning.exceptions import DatabaseError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)


class Database:
    """Store for planner settings and materialized forecasts."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._engine = None
            cls._instance._session = None
        return cls._instance

    def initialize(self, connection_string=None):
        """Bind the engine and session registry.

        Args:
            connection_string: SQLAlchemy URL; defaults to the DATABASE section
        """
        connection_string = connection_string or config.get_db_url()
        db_config = config.db_config

        if connection_string.startswith('sqlite'):
            # One shared connection so in-memory databases survive across sessions
            engine_kwargs = {'connect_args': {'check_same_thread': False}, 'poolclass': StaticPool}
        else:
            engine_kwargs = {
                key: db_config[key] for key in ('pool_size', 'max_overflow', 'pool_timeout', 'pool_recycle')
            }

        try:
            engine = create_engine(connection_string, echo=db_config['echo'], **engine_kwargs)
        except Exception as e:
            raise DatabaseError(f"Could not create database engine: {str(e)}")

        if self._session is not None:
            self._session.remove()
        self._engine = engine
        self._session = scoped_session(sessionmaker(bind=engine))
        logger.info(f"Planning store bound to {engine.url.drivername}")

    @property
    def engine(self):
        if self._engine is None:
            self.initialize()
        return self._engine

    @property
    def session(self):
        """Thread-local session registry."""
        if self._session is None:
            self.initialize()
        return self._session

    def create_all_tables(self):
        from demand_planning.models import Base
        Base.metadata.create_all(self.engine)

    def drop_all_tables(self):
        from demand_planning.models import Base
        Base.metadata.drop_all(self.engine)


db = Database()


@contextmanager
def session_scope():
    """Commit on success, roll back on any error."""
    session = db.session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
