"""Database configuration and initialization."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri: str, echo: bool) -> dict:
    """Pool options per backend (SQLite in-memory needs a single shared connection)."""
    if database_uri.startswith('sqlite'):
        return {
            'echo': echo,
            'connect_args': {'check_same_thread': False},
            'poolclass': StaticPool,
        }
    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    if app.config.get('AUTO_CREATE_SCHEMA'):
        create_schema()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create missing tables. Safe to run on every boot."""
    # Import models so every table is registered on Base.metadata
    import pos.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


# BIGINT ids on Postgres; SQLite only auto-increments INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer, 'sqlite')
