"""Core utility functions."""

from urllib.parse import urlparse, urlunparse

# Async driver -> sync driver used by Alembic
_SYNC_DRIVERS = {
    "+asyncpg": "+psycopg",
    "+aiosqlite": "",
}


def convert_async_db_url_to_sync(database_url: str) -> str:
    """
    Convert an async database URL to the sync URL Alembic migrations run with.

    Example:
        >>> convert_async_db_url_to_sync("postgresql+asyncpg://u:p@db/tram")
        'postgresql+psycopg://u:p@db/tram'
        >>> convert_async_db_url_to_sync("sqlite+aiosqlite:///tram.db")
        'sqlite:///tram.db'
    """
    parsed_url = urlparse(database_url)
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        if async_driver in parsed_url.scheme:
            sync_scheme = parsed_url.scheme.replace(async_driver, sync_driver)
            return urlunparse(parsed_url._replace(scheme=sync_scheme))
    return database_url
