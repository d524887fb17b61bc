"""
SQLAlchemy engine and session helpers.

Engines are built explicitly from a database URL (no module-level engine), so
the web app, the standalone counter worker and the tests can each own one.

SQLite notes:
- pysqlite's own transaction handling is disabled and SQLAlchemy emits BEGIN
  itself, so a connection opened with execution option ``sqlite_immediate=True``
  starts with ``BEGIN IMMEDIATE``. That takes the database write lock up front,
  which is what serializes allocations across processes sharing one file
  (SQLite ignores ``SELECT ... FOR UPDATE``). Other databases serialize them
  with a row lock on the ``allocation_lock`` table.
- Foreign keys are enabled per connection so ``ON DELETE CASCADE`` applies.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, applying the SQLite connection setup when needed."""
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}

    engine = create_engine(database_url, echo=echo, connect_args=connect_args)

    if is_sqlite:
        in_memory = ":memory:" in database_url or database_url.rstrip("/") == "sqlite:"

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN (see _on_begin)
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            if conn.get_execution_options().get("sqlite_immediate"):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Session factory bound to ``engine``.

    expire_on_commit=False keeps attributes readable after commit, which the
    store relies on when turning ORM rows into snapshots.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
