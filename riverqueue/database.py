"""
Database schema and connection management.

Defines the `river_job` table with SQLAlchemy. PostgreSQL is the production
target; SQLite works for tests and local use.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    SmallInteger,
    String,
    Text,
    and_,
    case,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.types import JSON

from .job import JobState
from .unique_bitmask import string_position

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiverJob(Base):
    """River job row."""

    __tablename__ = "river_job"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    args = Column(Text, nullable=False)  # encoded JSON, as produced by the job args
    attempt = Column(SmallInteger, nullable=False, default=0)
    attempted_at = Column(DateTime(timezone=True))
    attempted_by = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    errors = Column(JSON)
    finalized_at = Column(DateTime(timezone=True))
    kind = Column(String(128), nullable=False)
    max_attempts = Column(SmallInteger, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    priority = Column(SmallInteger, nullable=False, default=1)
    queue = Column(String(128), nullable=False, default="default")
    state = Column(String(16), nullable=False, default=JobState.AVAILABLE.value)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    tags = Column(JSON, nullable=False, default=list)
    unique_key = Column(LargeBinary)
    unique_states = Column(String(8))  # bitmask string, see unique_bitmask


def unique_states_contain_state():
    """
    SQL predicate that's true when a job has a unique key and its current
    state is one of the states flagged in its `unique_states` bitmask.
    """
    table = RiverJob.__table__
    position = case(
        {state.value: string_position(state) for state in JobState},
        value=table.c.state,
    )

    return and_(
        table.c.unique_key.isnot(None),
        table.c.unique_states.isnot(None),
        func.substr(table.c.unique_states, position, 1) == "1",
    )


UNIQUE_INDEX_WHERE = unique_states_contain_state()

Index(
    "river_job_unique_idx",
    RiverJob.__table__.c.unique_key,
    unique=True,
    postgresql_where=UNIQUE_INDEX_WHERE,
    sqlite_where=UNIQUE_INDEX_WHERE,
)
Index("river_job_kind_idx", RiverJob.__table__.c.kind)


def _to_url(database: Union[str, Path]) -> str:
    if isinstance(database, Path):
        return f"sqlite:///{database}"
    return database


def get_engine(database: Union[str, Path]) -> Engine:
    """
    Create an engine for a database URL, or for a SQLite file path.

    SQLite connections begin every transaction with BEGIN IMMEDIATE so that
    writers are serialized for the length of a transaction. This stands in
    for Postgres advisory locks.
    """
    engine = create_engine(_to_url(database))

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            # SQLAlchemy emits BEGIN itself, which keeps SAVEPOINT working
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_database(database: Union[str, Path]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        database: Database URL, or path to a SQLite database file

    Returns:
        Engine bound to the initialized database
    """
    url = make_url(_to_url(database))
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = get_engine(database)
    Base.metadata.create_all(engine)
    return engine


def get_session(database: Union[str, Path, Engine]) -> Session:
    """
    Get database session.

    Args:
        database: Engine, database URL, or path to a SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = database if isinstance(database, Engine) else get_engine(database)
    Session = sessionmaker(bind=engine)
    return Session()
