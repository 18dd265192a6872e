# base.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os
import threading

# Module-level cache for engines and sessionmakers (singleton pattern)
# Keyed by database URI to support both test and dev databases
_engines = {}
_sessionmakers = {}
_engines_lock = threading.Lock()

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _sqlite_uri(filename):
    db_path = os.path.join(_PROJECT_ROOT, filename)
    # Convert to forward slashes for SQLite URI (required on all platforms)
    db_path = db_path.replace('\\', '/')
    return f'sqlite:///{db_path}'


def get_database_uri():
    """
    Single source of truth for the database URI.

    - SLEEP_TITRATION_DATABASE_URI wins when set.
    - USE_TEST_DB=true selects the test database file.
    - Otherwise the SQLite file in the project root.
    """
    explicit = os.environ.get('SLEEP_TITRATION_DATABASE_URI')
    if explicit:
        return explicit
    if os.environ.get('USE_TEST_DB') == 'true':
        return _sqlite_uri(os.environ.get('TEST_DB_NAME', 'test_sleep_titration') + '.db')
    return _sqlite_uri('sleep_titration.db')


def _create_engine_for(database_uri):
    if database_uri.startswith('sqlite'):
        # SQLite file connections are shared across threads by the pool
        return create_engine(
            database_uri,
            echo=False,
            connect_args={'check_same_thread': False},
            pool_pre_ping=True
        )
    return create_engine(
        database_uri,
        echo=False,
        pool_size=10,           # Maintain 10 connections in pool
        max_overflow=20,        # Allow up to 20 additional connections
        pool_recycle=3600,      # Recycle connections after 1 hour
        pool_pre_ping=True      # Verify connections before using
    )


def get_current_engine():
    """Get the engine for the current database URI, creating it once."""
    database_uri = get_database_uri()
    with _engines_lock:
        if database_uri not in _engines:
            _engines[database_uri] = _create_engine_for(database_uri)
            _sessionmakers[database_uri] = sessionmaker(bind=_engines[database_uri])
        return _engines[database_uri]


def get_session():
    """
    Single source of truth for database sessions.

    Thread Safety:
    - The engine is thread-safe and shared across all threads
    - Each call creates a NEW session - sessions are NOT thread-safe
    - Each thread must use its own session instance
    """
    get_current_engine()
    with _engines_lock:
        session_maker = _sessionmakers[get_database_uri()]
    return session_maker()


def dispose_engines():
    """Dispose all cached engines (tests switch database URIs between runs)."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
        _sessionmakers.clear()


# Base declarative base (this is safe to create at import time)
Base = declarative_base()
