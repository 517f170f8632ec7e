"""
Entity-agnostic CRUD and batch operations.

One `Mediator` per entity. Every operation returns a `Result`: expected
failures (unknown fields, values of the wrong kind, bad paging, missing
rows, stale updates) come back as `Err`. Storage exceptions raised by
the provider are not caught here, except inside a batch where each
item's failure is accumulated.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Mapping, Sequence

from core import errors
from core.result import Err, Ok, Result
from entities import SchemaRegistry, coerce
from entities import registry as default_registry

from . import projection
from .provider import DataAccessProvider, Include, Transaction
from .query import parse_query
from .repository import PostgresProvider

logger = logging.getLogger(__name__)

CREATE_ITEMS = "createItems"
UPDATE_ITEMS = "updateItems"
DELETE_ITEMS = "deleteItems"
BATCH_KEYS = (CREATE_ITEMS, UPDATE_ITEMS, DELETE_ITEMS)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def _settle(operation: Awaitable[Result]) -> Result:
    """
    Run one batch item; a raised storage error becomes that item's Err.
    """
    try:
        return await operation
    except Exception as exc:
        return Err(errors.format_error(exc))


class Mediator:
    def __init__(
        self,
        model_name: str,
        concurrency_protection: bool = False,
        *,
        registry: SchemaRegistry | None = None,
        provider: DataAccessProvider | None = None,
    ) -> None:
        registry = registry or default_registry
        schema = registry.schema(model_name)
        if schema is None:
            raise errors.missing_model_name_error(model_name)

        self.model_name = model_name
        self.schema = schema
        self.concurrency_protection = concurrency_protection
        self.provider: DataAccessProvider = provider or PostgresProvider(schema, registry)

    def _bad_values(self, values: Mapping[str, Any]) -> list[errors.ApplicationError]:
        found = []
        for name, raw in values.items():
            descriptor = self.schema.field(name)
            if descriptor is None:
                continue
            try:
                coerce(name, descriptor, raw)
            except errors.ApplicationError as exc:
                found.append(exc)
        return found

    def _check_fields(self, item: Mapping[str, Any]) -> Err | None:
        missing = self.schema.missing_fields(item.keys())
        if missing:
            return Err(errors.error_collection(missing))
        return None

    def _check_values(self, *mappings: Mapping[str, Any]) -> Err | None:
        """
        Values that reach storage must fit their column kind.
        """
        found = [error for values in mappings for error in self._bad_values(values)]
        if found:
            return Err(errors.error_collection(found))
        return None

    def _not_found(self, criteria: Mapping[str, Any]) -> Err:
        return Err(errors.item_not_found_error(criteria.get("id"), self.model_name))

    def _is_stale(self, stored: dict[str, Any], item: Mapping[str, Any]) -> bool:
        """
        True when the stored row was modified after the caller's copy.

        A caller that sends no `updated_at` is not compared.
        """
        supplied = item.get("updated_at")
        current = stored.get("updated_at")
        if supplied is None or current is None:
            return False
        supplied = coerce("updated_at", self.schema.fields["updated_at"], supplied)
        return _as_utc(current) > _as_utc(supplied)

    async def create_one(self, item: Mapping[str, Any], tx: Transaction | None = None) -> Result:
        invalid = self._check_fields(item) or self._check_values(projection.writable(item))
        if invalid:
            return invalid

        stored = await self.provider.create(projection.writable(item), tx)
        return Ok(projection.pick(stored, projection.CREATE_RESULT_FIELDS))

    async def get_one(
        self,
        criteria: Mapping[str, Any],
        include: Sequence[Include] | None = None,
    ) -> Result:
        invalid = self._check_fields(criteria) or self._check_values(criteria)
        if invalid:
            return invalid

        row = await self.provider.find(criteria, include)
        if row is None:
            return self._not_found(criteria)
        return Ok(row)

    async def get_all(
        self,
        query_and_params: Mapping[str, Any] | None,
        include: Sequence[Include] | None = None,
    ) -> Result:
        options, found = parse_query(query_and_params, self.schema)
        found = found or self._bad_values(options.where or {})
        if found:
            return Err(errors.error_collection(found))
        return Ok(await self.provider.find_all(options, include))

    async def update_one(
        self,
        item: Mapping[str, Any],
        params: Mapping[str, Any],
        tx: Transaction | None = None,
    ) -> Result:
        invalid = self._check_fields(item) or self._check_values(
            projection.writable(item, params.keys()), params
        )
        if invalid:
            return invalid

        stored = await self.provider.find(params, tx=tx)
        if stored is None:
            return self._not_found(params)

        if self.concurrency_protection:
            try:
                stale = self._is_stale(stored, item)
            except errors.ApplicationError as exc:
                return Err(exc)
            if stale:
                logger.info("concurrency_conflict model=%s id=%s", self.model_name, params.get("id"))
                return Err(errors.concurrency_error(stored))

        patch = projection.writable(item, params.keys())
        affected = await self.provider.update(patch, params, tx)
        if affected == 0:
            return self._not_found(params)

        updated = await self.provider.find(params, tx=tx)
        if updated is None:
            return self._not_found(params)
        return Ok(projection.pick(updated, projection.UPDATE_RESULT_FIELDS))

    async def update_many(self, item: Mapping[str, Any], params: Mapping[str, Any]) -> Result:
        affected = await self.provider.update(projection.writable(item), params)
        return Ok({"affectedCount": affected})

    async def delete_one(self, criteria: Mapping[str, Any], tx: Transaction | None = None) -> Result:
        invalid = self._check_fields(criteria) or self._check_values(criteria)
        if invalid:
            return invalid

        affected = await self.provider.destroy(criteria, tx)
        if affected == 0:
            return self._not_found(criteria)
        return Ok({"id": criteria.get("id")})

    async def delete_all(self, query_and_params: Mapping[str, Any] | None, tx: Transaction | None = None) -> Result:
        options, found = parse_query(query_and_params, self.schema)
        found = found or self._bad_values(options.where or {})
        if found:
            return Err(errors.error_collection(found))
        return Ok(await self.provider.destroy(options.where or {}, tx))

    def _validate_batch(
        self,
        items: Mapping[str, Any],
    ) -> tuple[list[errors.ApplicationError], dict[str, list[errors.ApplicationError]]]:
        invalid = [errors.invalid_property_error(key) for key in items if key not in BATCH_KEYS]
        buckets: dict[str, list[errors.ApplicationError]] = {key: [] for key in BATCH_KEYS}
        for key in BATCH_KEYS:
            entries = items.get(key) or []
            if not isinstance(entries, list):
                buckets[key].append(errors.bad_input_error(f"'{key}' must be a list of items."))
                continue
            for entry in entries:
                if not isinstance(entry, Mapping):
                    buckets[key].append(errors.bad_input_error(f"Every entry of '{key}' must be an object."))
                    continue
                buckets[key].extend(self.schema.missing_fields(entry.keys()))
        return invalid, buckets

    async def batch_create_update_delete(self, items: Mapping[str, Any], params: Mapping[str, Any] | None = None) -> Result:
        """
        Apply creates, updates and deletes in one transaction, all or nothing.

        Validation runs first and touches no storage. Item operations then run
        concurrently on the same transaction; their failures are collected
        per list and any failure rolls everything back.
        """
        params = dict(params or {})
        if not isinstance(items, Mapping):
            return Err(errors.bad_input_error("The batch body must be an object."))

        invalid, buckets = self._validate_batch(items)
        if invalid or any(buckets.values()):
            return Err(
                errors.batch_error(
                    buckets[CREATE_ITEMS],
                    buckets[UPDATE_ITEMS],
                    buckets[DELETE_ITEMS],
                    errors=invalid,
                )
            )

        creates = [{**entry, **params} for entry in items.get(CREATE_ITEMS) or []]
        updates = list(items.get(UPDATE_ITEMS) or [])
        deletes = list(items.get(DELETE_ITEMS) or [])

        tx = await self.provider.begin_transaction()
        try:
            create_settled, update_settled, delete_settled = await asyncio.gather(
                asyncio.gather(*(_settle(self.create_one(entry, tx)) for entry in creates)),
                asyncio.gather(
                    *(_settle(self.update_one(entry, {**params, "id": entry.get("id")}, tx)) for entry in updates)
                ),
                asyncio.gather(
                    *(_settle(self.delete_one({**params, "id": entry.get("id")}, tx)) for entry in deletes)
                ),
            )
        except BaseException:
            await tx.rollback()
            raise

        results: dict[str, list[Any]] = {}
        for key, settled in (
            (CREATE_ITEMS, create_settled),
            (UPDATE_ITEMS, update_settled),
            (DELETE_ITEMS, delete_settled),
        ):
            results[key] = [r.value for r in settled if isinstance(r, Ok)]
            buckets[key].extend(r.error for r in settled if isinstance(r, Err))

        error_count = sum(len(bucket) for bucket in buckets.values())
        if error_count:
            await tx.rollback()
            logger.info("batch_rolled_back model=%s errors=%s", self.model_name, error_count)
            return Err(errors.batch_error(buckets[CREATE_ITEMS], buckets[UPDATE_ITEMS], buckets[DELETE_ITEMS]))

        await tx.commit()
        logger.info(
            "batch_committed model=%s created=%s updated=%s deleted=%s",
            self.model_name,
            len(creates),
            len(updates),
            len(deletes),
        )
        return Ok(
            {
                "createResults": results[CREATE_ITEMS],
                "updateResults": results[UPDATE_ITEMS],
                "deleteResults": results[DELETE_ITEMS],
            }
        )
