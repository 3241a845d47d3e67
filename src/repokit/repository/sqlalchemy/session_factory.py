"""SQLAlchemy session factory with environment variable configuration."""

import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def database_url_from_env() -> str:
    """Build the database URL from the ``SQL_DB_*`` environment variables.

    ``SQL_DB_URL`` is used as is when set. Otherwise the URL is assembled from:

    Environment variables (required):
        - SQL_DB_HOST: Database host
        - SQL_DB_NAME: Database name
        - SQL_DB_USER: Database user
        - SQL_DB_PASSWORD: Database password

    Environment variables (optional):
        - SQL_DB_PORT: Database port (default: 5432)
        - SQL_DB_DRIVER: Async driver (default: postgresql+asyncpg)

    Raises:
        KeyError: If a required variable is missing.
    """
    url = os.environ.get("SQL_DB_URL")
    if url:
        return url

    driver = os.environ.get("SQL_DB_DRIVER", "postgresql+asyncpg")
    host = os.environ["SQL_DB_HOST"]
    port = os.environ.get("SQL_DB_PORT", "5432")
    name = os.environ["SQL_DB_NAME"]
    user = os.environ["SQL_DB_USER"]
    password = os.environ["SQL_DB_PASSWORD"]
    return f"{driver}://{user}:{password}@{host}:{port}/{name}"


def create_session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Session factory for contexts: no autoflush, objects stay loaded after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


def create_default_session_factory(
    *,
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an engine and a session factory from the environment.

    See :func:`database_url_from_env` for the variables read.

    Args:
        echo: Enable SQL logging if True

    Returns:
        Tuple containing (engine, session_factory)
    """
    engine = create_async_engine(database_url_from_env(), echo=echo)
    return engine, create_session_factory(engine)
