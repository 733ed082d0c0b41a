"""SQLAlchemy database models for the vault registry."""
import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, String, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from jot_vault.config import config
from jot_vault.models.schema import BackendKind

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBVault(Base):
    """Database model for a registered vault."""
    __tablename__ = "vaults"
    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    location = Column(String(1024), nullable=False)
    backend = Column(String(16), default=BackendKind.LOCAL.value, nullable=False)
    server_vault_id = Column(String(255), nullable=True)
    is_current = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_opened = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        """Return string representation of vault."""
        return f"<Vault(id='{self.id}', name='{self.name}', backend='{self.backend}')>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the registry engine and tables.

    SQLite runs in WAL mode so a crash mid-write cannot corrupt the registry.
    """
    engine = create_engine(db_url or config.get_registry_url())

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the registry database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
