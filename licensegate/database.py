from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config.settings import Settings, settings


class Base(DeclarativeBase):
    pass


def _configure_sqlite(engine: Engine) -> None:
    """Enforce foreign keys and serialize writers on SQLite.

    pysqlite defers BEGIN until the first DML statement, so two writers can
    both hold SHARED locks and deadlock on upgrade. Starting every
    transaction with BEGIN IMMEDIATE makes conditional updates and
    delete-returning behave as single atomic steps.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(config: Settings = settings) -> Engine:
    engine = create_engine(config.DATABASE_URL, **config.DATABASE_SETTINGS)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False)


def init_db(engine: Engine) -> None:
    """Create all tables"""
    from . import models  # noqa: F401  (registers mappers)

    Base.metadata.create_all(bind=engine)


def session_scope(factory: sessionmaker) -> Generator:
    """Database session dependency"""
    db = factory()
    try:
        yield db
    finally:
        db.close()
