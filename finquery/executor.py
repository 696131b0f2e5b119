"""Runs resolved queries against the datastore."""

import asyncio
import datetime as dt
import re
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from finquery.errors import ExecutionError
from finquery.logger import get_logger
from finquery.models import ResolvedQuery, ResultSet
from finquery.tenant_guard import TENANT_PARAM, check_tenant_isolation

logger = get_logger("finquery.executor")

_TENANT_BIND = re.compile(rf"(?<![:\w]):{TENANT_PARAM}\b")


def _is_transient(exc: Exception) -> bool:
    """Connection-level failures are worth one retry; query errors are not."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OperationalError, InterfaceError, ConnectionError))


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dt.date, dt.datetime, dt.time)):
        return value.isoformat()
    return value


def _unique_columns(names: list[str]) -> list[str]:
    """Suffix repeated column names (``sum``, ``sum_2``) so no value is lost."""
    unique = []
    for name in names:
        candidate, n = name, 1
        while candidate in unique:
            n += 1
            candidate = f"{name}_{n}"
        unique.append(candidate)
    return unique


class QueryExecutor:
    """Executes tenant-checked, parameter-bound SELECT queries."""

    def __init__(
        self,
        engine: AsyncEngine,
        tenant_column: str = "business_id",
        timeout: float = 15.0,
        max_attempts: int = 2,
    ):
        self.engine = engine
        self.tenant_column = tenant_column
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)

    async def _run(self, sql: str, params: dict[str, Any]) -> ResultSet:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(sql), params)
            columns = _unique_columns(list(result.keys()))
            rows = [
                dict(zip(columns, (_plain(value) for value in row)))
                for row in result.all()
            ]
        return ResultSet(columns=columns, rows=rows)

    async def execute(self, resolved: ResolvedQuery) -> ResultSet:
        # Raises TenantIsolationError before any connection is opened.
        check_tenant_isolation(resolved.sql, resolved.business_id, self.tenant_column)

        params = dict(resolved.params)
        if _TENANT_BIND.search(resolved.sql):
            params[TENANT_PARAM] = resolved.business_id

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.wait_for(self._run(resolved.sql, params), self.timeout)
            except asyncio.TimeoutError as exc:
                raise ExecutionError(f"Query timed out after {self.timeout}s") from exc
            except (SQLAlchemyError, OSError) as exc:
                if _is_transient(exc) and attempt < self.max_attempts:
                    logger.warning(
                        "Transient database error (attempt %d/%d): %s",
                        attempt, self.max_attempts, exc,
                    )
                    continue
                raise ExecutionError(f"Query failed: {exc}") from exc

            logger.info(
                "Query returned %d row(s) for business %s",
                result.row_count, resolved.business_id,
            )
            return result

    async def close(self) -> None:
        await self.engine.dispose()
