import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from litemap.core.config import settings
from litemap.core.schemas import ExecResult

logger = logging.getLogger(__name__)

Rows = List[Dict[str, Any]]

ROW_RETURNING_PREFIXES = ("SELECT", "PRAGMA", "WITH")


def returns_rows(sql: str) -> bool:
    return sql.lstrip().upper().startswith(ROW_RETURNING_PREFIXES)


class ExecutionTransport(Protocol):
    """Anything that can run one SQL statement with positional parameters."""

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> Union[Rows, ExecResult]:
        ...

    async def close(self) -> None:
        ...


class SqlAlchemyTransport:
    """
    Runs statements on a single long-lived async SQLAlchemy connection.

    The connection is switched to AUTOCOMMIT so the driver never opens implicit
    transactions; BEGIN / COMMIT / ROLLBACK are issued explicitly by the data
    source. Keeping one connection also keeps `sqlite+aiosqlite:///:memory:`
    databases alive between statements.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        if engine is None:
            engine = create_async_engine(
                url or settings.DATABASE_URL,
                echo=settings.SQL_ECHO if echo is None else echo,
            )
        self.engine = engine
        self._connection: Optional[AsyncConnection] = None

    async def connect(self) -> AsyncConnection:
        if self._connection is None:
            connection = await self.engine.connect()
            self._connection = await connection.execution_options(isolation_level="AUTOCOMMIT")
        return self._connection

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> Union[Rows, ExecResult]:
        connection = await self.connect()
        logger.debug("SQL: %s -- params: %r", sql, list(params))

        result = await connection.exec_driver_sql(sql, tuple(params) if params else None)

        if returns_rows(sql):
            if not result.returns_rows:
                return []
            # Plain tuples: a joined alias may repeat a root column name
            keys = list(result.keys())
            return [dict(zip(keys, row)) for row in result.all()]

        return ExecResult(insert_id=result.lastrowid, rows_affected=max(result.rowcount, 0))

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
        await self.engine.dispose()
