"""SQL access for sql steps built on SQLAlchemy.

Drivers are resolved by SQLAlchemy from the profile's URL, so mysql, postgresql and
mssql profiles need the matching DBAPI package (pymysql, psycopg2, pymssql) installed.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from radiusedge import exceptions, helpers
from radiusedge.binds import DatabaseBind
from radiusedge.logging import mask_secret

logger = logging.getLogger(__name__)


class SQLAlchemyBind(DatabaseBind):
    """Open one connection per sql step and run plain-text queries on it."""

    def __init__(self, engine_options=None):
        self.engine_options = {"pool_pre_ping": True, **(engine_options or {})}
        self.engine = None
        self.connection = None

    def connect(self, profile):
        """Create an engine for the profile and check out one connection.

        Raises:
            ConnectionError: If the driver is missing or the database cannot be reached
        """
        mask_secret(profile.password)
        try:
            self.engine = create_engine(profile.connection_url, **self.engine_options)
            self.connection = self.engine.connect()
        except (SQLAlchemyError, ImportError) as err:
            self.disconnect()
            raise exceptions.ConnectionError(
                f"Unable to connect to database {profile.name!r}: {err}"
            ) from err
        logger.debug(f"Connected to database {profile.name!r}")

    def execute_query(self, query):
        """Execute a query, returning its rows as dicts or the error message."""
        if self.connection is None:
            raise exceptions.ConnectionError("Database connection is not open")
        try:
            cursor = self.connection.execute(text(query))
            rows = [dict(row) for row in cursor.mappings()] if cursor.returns_rows else []
            self.connection.commit()
        except SQLAlchemyError as err:
            self.connection.rollback()
            return helpers.Result(rows=[], error=str(getattr(err, "orig", None) or err))
        return helpers.Result(rows=rows, error=None)

    def disconnect(self):
        if self.connection is not None:
            self.connection.close()
            self.connection = None
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
