"""
Database Configuration
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from typing import Generator

from balance_service.core.config import settings

db_url = settings.DATABASE_URL


def use_wal(engine: Engine) -> Engine:
    """Put sqlite databases in WAL mode so open read snapshots never block writers"""
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _set_journal_mode(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


engine = use_wal(create_engine(
    db_url,
    connect_args={"check_same_thread": False} if "sqlite" in db_url else {},
    echo=settings.DEBUG
))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures the session is closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def begin_snapshot(session: Session) -> None:
    """
    Open the session's transaction so every later read sees the database as it
    stood at the first one. Call it on a fresh session, before any query.
    """
    if session.get_bind().dialect.name == "sqlite":
        # pysqlite only opens a transaction by itself before a write
        session.connection().exec_driver_sql("BEGIN")
    else:
        session.connection(execution_options={"isolation_level": "REPEATABLE READ"})


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from balance_service.models import (
        User, Customer, Supplier, Invoice, InvoiceItem, ProcurementOrder,
        Employee, SalaryPayment, Advance, Transaction, BalanceSession, AuditLog
    )
    Base.metadata.create_all(bind=bind or engine)
