"""
Contracts between the mediator and whatever performs persistence.

The mediator only sees these protocols; `repository.PostgresProvider` is
the production implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from .query import QueryOptions


@dataclass(frozen=True)
class Include:
    """
    Attach rows of `entity` whose `foreign_key` equals the parent row id, under `as_`.
    """

    entity: str
    foreign_key: str
    as_: str | None = None

    @property
    def key(self) -> str:
        return self.as_ or f"{self.entity}s"


class Transaction(Protocol):
    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class DataAccessProvider(Protocol):
    async def create(self, item: Mapping[str, Any], tx: Transaction | None = None) -> dict[str, Any]: ...

    async def find(
        self,
        criteria: Mapping[str, Any],
        include: Sequence[Include] | None = None,
        tx: Transaction | None = None,
    ) -> dict[str, Any] | None: ...

    async def find_all(
        self,
        options: QueryOptions,
        include: Sequence[Include] | None = None,
    ) -> list[dict[str, Any]]: ...

    async def update(
        self,
        patch: Mapping[str, Any],
        criteria: Mapping[str, Any],
        tx: Transaction | None = None,
    ) -> int: ...

    async def destroy(self, criteria: Mapping[str, Any], tx: Transaction | None = None) -> int: ...

    async def begin_transaction(self) -> Transaction: ...
