"""
SQLite storage for the durable lease registry.

Every SqliteRegistry opens its own database file, so the table models are
declared unbound here and bound per database with bind_models(). Binding
creates subclasses instead of re-pointing the declared classes, which keeps
two registries in one process (and their worker threads) apart.

Components:
    - BaseModel: Base class of the lease tables
    - bind_models: Model subclasses bound to one database
    - initialize_database: Open a file, apply pragmas, create tables
"""

import os

import peewee

from kohakunet.utils.logger import get_logger

logger = get_logger(__name__)

# WAL lets watchers read while an agent holds the write lock
SQLITE_PRAGMAS = {
    "busy_timeout": 5000,
    "journal_mode": "wal",
    "synchronous": "normal",
}


# =============================================================================
# Base Model
# =============================================================================


class BaseModel(peewee.Model):
    """
    Base model for all KohakuNet database models.

    Declared without a database; use bind_models() to get classes that
    query a specific file.
    """


def bind_models(
    models: list[type[BaseModel]], database: peewee.SqliteDatabase
) -> list[type[BaseModel]]:
    """Subclass each model with its Meta bound to database."""
    bound = []
    for model in models:
        meta = type(
            "Meta",
            (),
            {"database": database, "table_name": model._meta.table_name},
        )
        bound.append(
            type(model.__name__, (model,), {"Meta": meta, "__module__": model.__module__})
        )
    return bound


# =============================================================================
# Database Lifecycle
# =============================================================================


def initialize_database(
    db_path: str, models: list[type[BaseModel]]
) -> tuple[peewee.SqliteDatabase, list[type[BaseModel]]]:
    """
    Open a database file and create the tables of models in it.

    Connections are opened per operation (see SqliteRegistry), so this only
    connects long enough to create the schema.

    Args:
        db_path: Path to the SQLite database file.
        models: Unbound model classes to create tables for.

    Returns:
        The database and the models bound to it, in the order given.

    Raises:
        OSError: If the database directory cannot be created.
        peewee.OperationalError: If database connection fails.
    """
    logger.debug(f"Initializing database at: {db_path}")

    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    database = peewee.SqliteDatabase(db_path, pragmas=SQLITE_PRAGMAS)
    bound = bind_models(models, database)

    try:
        with database.connection_context():
            database.create_tables(bound, safe=True)
    except peewee.OperationalError as e:
        logger.error(f"Failed to initialize database '{db_path}': {e}")
        raise

    logger.info(f"Database initialized: {db_path}")
    return database, bound
