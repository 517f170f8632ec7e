"""
PostgreSQL data-access provider (raw SQL over the asyncpg pool).

Identifiers are only ever taken from the entity schema and are always
double-quoted; values are always bound as $n parameters after coercion
to the column kind.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import asyncpg

from core import db, errors
from entities import EntitySchema, SchemaRegistry, coerce
from entities import registry as default_registry

from .provider import Include
from .query import QueryOptions

logger = logging.getLogger(__name__)


def _ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class PostgresTransaction:
    """
    One pooled connection inside BEGIN ... COMMIT/ROLLBACK.

    asyncpg connections run one statement at a time, so concurrent batch
    items queue on `lock`.
    """

    def __init__(self, conn: asyncpg.Connection, transaction: Any) -> None:
        self.conn = conn
        self.lock = asyncio.Lock()
        self._transaction = transaction
        self._done = False

    async def commit(self) -> None:
        try:
            await self._transaction.commit()
        finally:
            await self._release()

    async def rollback(self) -> None:
        try:
            await self._transaction.rollback()
        finally:
            await self._release()

    async def _release(self) -> None:
        if self._done:
            return
        self._done = True
        await db.pool().release(self.conn)


class PostgresProvider:
    def __init__(self, schema: EntitySchema, registry: SchemaRegistry | None = None) -> None:
        self.schema = schema
        self.registry = registry or default_registry
        self.table = _ident(schema.table)

    def _value(self, name: str, raw: Any, schema: EntitySchema | None = None) -> Any:
        schema = schema or self.schema
        descriptor = schema.field(name)
        if descriptor is None:
            raise errors.missing_field_error(schema.name, name)
        return coerce(name, descriptor, raw)

    def _where(self, criteria: Mapping[str, Any], args: list[Any]) -> str:
        clauses = []
        for name, raw in criteria.items():
            value = self._value(name, raw)
            if value is None:
                clauses.append(f"{_ident(name)} IS NULL")
            else:
                args.append(value)
                clauses.append(f"{_ident(name)} = ${len(args)}")
        if not clauses:
            return ""
        return " WHERE " + " AND ".join(clauses)

    def _columns(self, options: QueryOptions) -> str:
        if options.attributes:
            names = [n for n in options.attributes if self.schema.has_field(n)]
        elif options.exclude:
            excluded = set(options.exclude)
            names = [n for n in self.schema.field_names if n not in excluded]
        else:
            return "*"
        return ", ".join(_ident(n) for n in names) or "*"

    async def _fetch_one(self, sql: str, args: list[Any], tx: PostgresTransaction | None) -> dict[str, Any] | None:
        if tx is None:
            return await db.fetch_one(sql, *args)
        async with tx.lock:
            return await db.fetch_one(sql, *args, conn=tx.conn)

    async def _execute(self, sql: str, args: list[Any], tx: PostgresTransaction | None) -> int:
        if tx is None:
            return await db.execute(sql, *args)
        async with tx.lock:
            return await db.execute(sql, *args, conn=tx.conn)

    async def create(self, item: Mapping[str, Any], tx: PostgresTransaction | None = None) -> dict[str, Any]:
        columns: list[str] = []
        args: list[Any] = []
        for name, raw in item.items():
            args.append(self._value(name, raw))
            columns.append(_ident(name))
        placeholders = [f"${i}" for i in range(1, len(args) + 1)]
        column_sql = ", ".join(columns + ['"created_at"', '"updated_at"'])
        values_sql = ", ".join(placeholders + ["now()", "now()"])

        sql = f"INSERT INTO {self.table} ({column_sql}) VALUES ({values_sql}) RETURNING *"
        row = await self._fetch_one(sql, args, tx)
        if row is None:
            raise RuntimeError(f"Failed to create {self.schema.name}.")
        return row

    async def find(
        self,
        criteria: Mapping[str, Any],
        include: Sequence[Include] | None = None,
        tx: PostgresTransaction | None = None,
    ) -> dict[str, Any] | None:
        args: list[Any] = []
        sql = f"SELECT * FROM {self.table}{self._where(criteria, args)} LIMIT 1"
        row = await self._fetch_one(sql, args, tx)
        if row is None:
            return None
        if include:
            await self._attach(include, [row])
        return row

    async def find_all(
        self,
        options: QueryOptions,
        include: Sequence[Include] | None = None,
    ) -> list[dict[str, Any]]:
        args: list[Any] = []
        sql = f"SELECT {self._columns(options)} FROM {self.table}{self._where(options.where or {}, args)}"
        if options.order:
            sql += " ORDER BY " + ", ".join(f"{_ident(n)} {d.value}" for n, d in options.order)
        if options.limit is not None:
            args.append(options.limit)
            sql += f" LIMIT ${len(args)}"
        if options.offset is not None:
            args.append(options.offset)
            sql += f" OFFSET ${len(args)}"

        rows = await db.fetch_all(sql, *args)
        if include:
            await self._attach(include, rows)
        return rows

    async def update(
        self,
        patch: Mapping[str, Any],
        criteria: Mapping[str, Any],
        tx: PostgresTransaction | None = None,
    ) -> int:
        args: list[Any] = []
        assignments = []
        for name, raw in patch.items():
            args.append(self._value(name, raw))
            assignments.append(f"{_ident(name)} = ${len(args)}")
        assignments.append('"updated_at" = now()')

        sql = f"UPDATE {self.table} SET {', '.join(assignments)}{self._where(criteria, args)}"
        return await self._execute(sql, args, tx)

    async def destroy(self, criteria: Mapping[str, Any], tx: PostgresTransaction | None = None) -> int:
        args: list[Any] = []
        sql = f"DELETE FROM {self.table}{self._where(criteria, args)}"
        return await self._execute(sql, args, tx)

    async def begin_transaction(self) -> PostgresTransaction:
        conn = await db.pool().acquire()
        transaction = conn.transaction()
        try:
            await transaction.start()
        except BaseException:
            await db.pool().release(conn)
            raise
        return PostgresTransaction(conn, transaction)

    async def _attach(self, include: Sequence[Include], rows: list[dict[str, Any]]) -> None:
        ids = [row["id"] for row in rows if row.get("id") is not None]
        for inc in include:
            related = self.registry.schema(inc.entity)
            if related is None:
                raise errors.missing_model_name_error(inc.entity)
            if not related.has_field(inc.foreign_key):
                raise errors.missing_field_error(related.name, inc.foreign_key)

            children: list[dict[str, Any]] = []
            if ids:
                children = await db.fetch_all(
                    f"SELECT * FROM {_ident(related.table)} "
                    f"WHERE {_ident(inc.foreign_key)} = ANY($1) ORDER BY \"id\"",
                    ids,
                )
            grouped: dict[Any, list[dict[str, Any]]] = {}
            for child in children:
                grouped.setdefault(child[inc.foreign_key], []).append(child)
            for row in rows:
                row[inc.key] = grouped.get(row.get("id"), [])
        logger.debug("include_attached model=%s includes=%s rows=%s", self.schema.name, len(include), len(rows))
