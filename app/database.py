import logging
from dataclasses import dataclass, field
from typing import Any, Union

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.expression import Executable

from app import config

db_logger = logging.getLogger("todo.database")
error_logger = logging.getLogger("todo.error")


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(url: str = config.DATABASE_URL, **kwargs) -> AsyncEngine:
    engine = create_async_engine(
        url,
        future=True,
        pool_pre_ping=True,
        echo=config.SQL_ECHO,
        **kwargs,
    )
    if engine.dialect.name == "sqlite":
        # cascades on todolists -> todos rely on it
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class Database:
    """
    Query-execution primitive.

    Every call checks out its own connection and runs in its own
    transaction, so independent statements may be awaited together.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def query(self, statement: Union[str, Executable], **params: Any) -> QueryResult:
        """
        Run one statement. Raw SQL strings take named parameters
        (`:title`); SQLAlchemy constructs carry their own bound values.
        """
        if isinstance(statement, str):
            statement = text(statement)
        db_logger.debug("%s %r", statement, params)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement, params or None)
                if result.returns_rows:
                    rows = [dict(row) for row in result.mappings()]
                    query_result = QueryResult(rows=rows, rowcount=len(rows))
                else:
                    query_result = QueryResult(rowcount=result.rowcount)
        except SQLAlchemyError as error:
            error_logger.error("Statement failed: %s (%s)", statement, error)
            raise
        db_logger.debug("-> %d row(s)", query_result.rowcount)
        return query_result

    async def dispose(self) -> None:
        await self.engine.dispose()


engine = create_engine()
database = Database(engine)


async def db_query(statement: Union[str, Executable], **params: Any) -> QueryResult:
    return await database.query(statement, **params)
