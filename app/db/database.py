"""Database engine, session factory and reflection helpers."""

from collections.abc import Generator

from sqlalchemy import MetaData, Table, create_engine, inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings

settings = get_settings()

engine_kwargs = {
    "echo": settings.debug,
}

# SQLite doesn't support pool_size/max_overflow
if not settings.database_url.startswith("sqlite"):
    engine_kwargs.update(
        {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
        }
    )
else:
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Get database session.

    Yields:
        Session: SQLAlchemy session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables defined in models if they don't exist.

    Only runs in debug mode; production schemas are provisioned by the
    deployment. Columns added by imports live only in the database.
    """
    from app.db.models import Base

    if settings.debug:
        Base.metadata.create_all(bind=engine)


def get_column_names(bind: Engine | Connection, table_name: str) -> set[str]:
    """Return the column names currently defined on a table.

    Reads the live catalog rather than the ORM metadata, so columns added
    at runtime are included.

    Args:
        bind: Engine or connection to inspect.
        table_name: Name of the table.

    Returns:
        set[str]: Column names.
    """
    return {col["name"] for col in inspect(bind).get_columns(table_name)}


def reflect_table(bind: Engine | Connection, table_name: str) -> Table:
    """Reflect a table into a fresh MetaData.

    A new MetaData is used on every call so columns added since the last
    reflection are picked up.

    Args:
        bind: Engine or connection to reflect from.
        table_name: Name of the table.

    Returns:
        Table: The reflected table.
    """
    return Table(table_name, MetaData(), autoload_with=bind)
