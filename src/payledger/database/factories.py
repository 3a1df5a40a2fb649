"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from payledger.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks PAYLEDGER_DB_PATH
            environment variable, then defaults to ~/.payledger/payledger.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("PAYLEDGER_DB_PATH")

    if database_path is None:
        # Default to ~/.payledger/payledger.db
        home = Path.home()
        db_dir = home / ".payledger"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "payledger.db")

    database_url = f"sqlite:///{database_path}"
    return SQLAlchemyDatabase(database_url)


def create_database(database_url: Optional[str] = None, database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a database from a full SQLAlchemy URL or a SQLite path.

    A URL given directly or through PAYLEDGER_DATABASE_URL takes precedence
    over the SQLite path.
    """
    if database_url is None:
        database_url = os.environ.get("PAYLEDGER_DATABASE_URL")

    if database_url:
        return SQLAlchemyDatabase(database_url)
    return create_sqlite_database(database_path)
