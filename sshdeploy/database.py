"""
Database models for sshdeploy state.

Key registry entries and deployment results are both stored as append-only
logs. Rows are inserted, never updated or deleted.
"""

import os
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    JSON,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from sshdeploy.constants import DB_URL_ENV_VAR, DEFAULT_DB_FILENAME, DEFAULT_STATE_DIR
from sshdeploy.utils import utcnow

Base = declarative_base()


class KeyRecord(Base):
    """One registry event: a key becoming active or inactive for a target."""

    __tablename__ = "key_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    target = Column(String(100), nullable=False, index=True)
    label = Column(String(200), nullable=False, index=True)
    key_type = Column(String(100), nullable=False)
    public_key = Column(Text, nullable=False)
    comment = Column(String(500), nullable=False, default="")
    policy = Column(JSON, nullable=False)
    active = Column(Boolean, nullable=False)


class DeploymentRecord(Base):
    """Audit record of one deployment run."""

    __tablename__ = "deployment_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(64), unique=True, nullable=False, index=True)
    target = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    failed_stage = Column(String(50), nullable=True)
    error_kind = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    steps = Column(JSON, nullable=False)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=False)


def default_database_url(state_dir: str = DEFAULT_STATE_DIR) -> str:
    """Get database URL from environment or fall back to SQLite in the state dir."""
    env_url = os.getenv(DB_URL_ENV_VAR)
    if env_url:
        return env_url
    db_path = Path(state_dir).expanduser() / DEFAULT_DB_FILENAME
    return f"sqlite:///{db_path}"


def create_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    """
    Create engine, ensure tables exist, and return a session factory.

    Args:
        database_url: SQLAlchemy URL (defaults to default_database_url())

    Returns:
        Configured sessionmaker
    """
    url = database_url or default_database_url()

    if url.startswith("sqlite:///"):
        Path(url[len("sqlite:///"):]).expanduser().parent.mkdir(
            parents=True, exist_ok=True
        )

    engine = create_engine(url)
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
