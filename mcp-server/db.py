from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Optional, Protocol, Sequence

import asyncpg
from asyncpg import Pool

from errors import StoreError
from formatters import plain_record

_LOGGER = logging.getLogger("affiliate_mcp.db")

KNOWN_TABLES = frozenset(
    {
        "brands",
        "products",
        "product_variants",
        "leads",
        "search_events",
        "click_events",
    }
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)


class Database:
    """Asyncpg pool manager for MCP tools."""

    def __init__(
        self,
        dsn: str = "",
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 30.0,
    ) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._pool: Optional[Pool] = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        if not self._dsn:
            raise RuntimeError("DATABASE_URL is required")

        async def _init_connection(conn: asyncpg.Connection) -> None:
            await conn.set_type_codec(
                "json",
                schema="pg_catalog",
                encoder=json.dumps,
                decoder=json.loads,
            )
            await conn.set_type_codec(
                "jsonb",
                schema="pg_catalog",
                encoder=json.dumps,
                decoder=json.loads,
            )

        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=self._command_timeout,
            init=_init_connection,
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("Database pool is not initialized")
        return self._pool


class CatalogStore(Protocol):
    """The slice of the data store the tools rely on."""

    async def fetch_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] | None = None,
    ) -> dict[str, Any] | None: ...

    async def fetch_all(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        columns: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert_one(self, table: str, row: Mapping[str, Any]) -> None: ...


def quote_identifier(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise StoreError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def _table(name: str) -> str:
    if name not in KNOWN_TABLES:
        raise StoreError(f"Unknown table: {name!r}")
    return quote_identifier(name)


def _select_list(columns: Sequence[str] | None) -> str:
    if not columns:
        return "*"
    return ", ".join(quote_identifier(column) for column in columns)


def _where(filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    clauses = []
    values: list[Any] = []
    for idx, (column, value) in enumerate(filters.items(), start=1):
        clauses.append(f"{quote_identifier(column)} = ${idx}")
        values.append(value)
    return " where " + " and ".join(clauses), values


def build_select(
    table: str,
    filters: Mapping[str, Any],
    order_by: str | None = None,
    columns: Sequence[str] | None = None,
    limit: int | None = None,
) -> tuple[str, list[Any]]:
    where_sql, values = _where(filters)
    sql = f"select {_select_list(columns)} from {_table(table)}{where_sql}"
    if order_by:
        sql += f" order by {quote_identifier(order_by)} asc"
    if limit is not None:
        sql += f" limit {int(limit)}"
    return sql, values


def build_insert(table: str, row: Mapping[str, Any]) -> tuple[str, list[Any]]:
    if not row:
        raise StoreError(f"Refusing to insert an empty row into {table}")
    columns = [quote_identifier(str(column)) for column in row.keys()]
    placeholders = [f"${idx}" for idx in range(1, len(columns) + 1)]
    sql = f"insert into {_table(table)} ({', '.join(columns)}) values ({', '.join(placeholders)})"
    return sql, list(row.values())


class PostgresStore:
    """CatalogStore over an asyncpg pool.

    Rows come back as plain dicts with JSON-ready values; driver and
    connection failures surface as StoreError.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def _pool(self) -> Pool:
        try:
            return self._db.pool
        except RuntimeError as exc:
            raise StoreError(str(exc)) from exc

    async def fetch_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] | None = None,
    ) -> dict[str, Any] | None:
        sql, values = build_select(table, filters, columns=columns, limit=1)
        try:
            row = await self._pool().fetchrow(sql, *values)
        except _DRIVER_ERRORS as exc:
            _LOGGER.warning("fetch_one failed table=%s error=%s", table, exc)
            raise StoreError(f"Query against {table} failed: {exc}") from exc
        return plain_record(row) if row is not None else None

    async def fetch_all(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        columns: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        sql, values = build_select(table, filters, order_by=order_by, columns=columns)
        try:
            rows = await self._pool().fetch(sql, *values)
        except _DRIVER_ERRORS as exc:
            _LOGGER.warning("fetch_all failed table=%s error=%s", table, exc)
            raise StoreError(f"Query against {table} failed: {exc}") from exc
        return [plain_record(row) for row in rows]

    async def insert_one(self, table: str, row: Mapping[str, Any]) -> None:
        sql, values = build_insert(table, row)
        try:
            await self._pool().execute(sql, *values)
        except _DRIVER_ERRORS as exc:
            _LOGGER.warning("insert failed table=%s error=%s", table, exc)
            raise StoreError(f"Insert into {table} failed: {exc}") from exc


__all__ = [
    "Database",
    "CatalogStore",
    "PostgresStore",
    "KNOWN_TABLES",
    "quote_identifier",
    "build_select",
    "build_insert",
]
