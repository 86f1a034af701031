"""
Database Engine.

Builds the process-wide SQLAlchemy engine from DATABASE_URL. PostgreSQL is
the production target; SQLite serves local runs and tests. Repositories take
an engine in their constructor, so tests can hand them their own.
"""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from ...config import settings

# Statement echo stays off: workflow payloads and prompts end up in SQL.
engine = create_engine(settings.DATABASE_URL, echo=False)


def init_db(bind: Engine = engine):
    """Creates any missing tables. Safe to call on every startup."""
    # Importing the models registers them on SQLModel.metadata.
    from . import tables  # noqa: F401

    SQLModel.metadata.create_all(bind)
