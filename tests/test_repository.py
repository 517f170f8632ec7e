import asyncio

import pytest

from core import db, errors
from entities import EntitySchema, FieldKind, SchemaRegistry
from entities.definitions import TASK, USER
from mediation.provider import Include
from mediation.query import QueryOptions, SortDirection
from mediation.repository import PostgresProvider


class _Recorder:
    def __init__(self, one=None, many=None, tag_count=1):
        self.statements = []
        self.one = one
        self.many = many or []
        self.tag_count = tag_count

    async def fetch_one(self, sql, *args, conn=None):
        self.statements.append((sql, args))
        return self.one

    async def fetch_all(self, sql, *args, conn=None):
        self.statements.append((sql, args))
        return [dict(r) for r in self.many]

    async def execute(self, sql, *args, conn=None):
        self.statements.append((sql, args))
        return self.tag_count


@pytest.fixture()
def recorder(monkeypatch):
    rec = _Recorder()
    monkeypatch.setattr(db, "fetch_one", rec.fetch_one)
    monkeypatch.setattr(db, "fetch_all", rec.fetch_all)
    monkeypatch.setattr(db, "execute", rec.execute)
    return rec


def test_affected_rows_parses_command_tags():
    assert db.affected_rows("UPDATE 3") == 3
    assert db.affected_rows("DELETE 0") == 0
    assert db.affected_rows("") == 0


def test_create_binds_coerced_values_and_stamps_timestamps(recorder):
    recorder.one = {"id": 1}
    asyncio.run(PostgresProvider(TASK).create({"description": "a", "completed": "true"}))

    sql, args = recorder.statements[0]
    assert sql == (
        'INSERT INTO "tasks" ("description", "completed", "created_at", "updated_at") '
        "VALUES ($1, $2, now(), now()) RETURNING *"
    )
    assert args == ("a", True)


def test_find_uses_equality_and_null_checks(recorder):
    asyncio.run(PostgresProvider(TASK).find({"id": "4", "description": None}))
    sql, args = recorder.statements[0]
    assert sql == 'SELECT * FROM "tasks" WHERE "id" = $1 AND "description" IS NULL LIMIT 1'
    assert args == (4,)


def test_find_all_composes_projection_order_and_paging(recorder):
    options = QueryOptions(
        attributes=["id", "description"],
        order=[("description", SortDirection.DESC), ("id", SortDirection.ASC)],
        limit=10,
        offset=20,
        where={"completed": "false"},
    )
    asyncio.run(PostgresProvider(TASK).find_all(options))
    sql, args = recorder.statements[0]
    assert sql == (
        'SELECT "id", "description" FROM "tasks" WHERE "completed" = $1 '
        'ORDER BY "description" DESC, "id" ASC LIMIT $2 OFFSET $3'
    )
    assert args == (False, 10, 20)


def test_find_all_exclusion_lists_remaining_columns(recorder):
    asyncio.run(PostgresProvider(TASK).find_all(QueryOptions(exclude=["created_at", "updated_at"], where={})))
    sql, _ = recorder.statements[0]
    assert sql == 'SELECT "id", "description", "completed" FROM "tasks"'


def test_update_stamps_updated_at_and_returns_count(recorder):
    recorder.tag_count = 2
    affected = asyncio.run(PostgresProvider(TASK).update({"completed": True}, {"description": "x"}))
    sql, args = recorder.statements[0]
    assert sql == 'UPDATE "tasks" SET "completed" = $1, "updated_at" = now() WHERE "description" = $2'
    assert args == (True, "x")
    assert affected == 2


def test_destroy_without_criteria_deletes_everything(recorder):
    asyncio.run(PostgresProvider(TASK).destroy({}))
    assert recorder.statements[0] == ('DELETE FROM "tasks"', ())


def test_unknown_columns_are_never_interpolated(recorder):
    with pytest.raises(errors.ApplicationError) as exc:
        asyncio.run(PostgresProvider(TASK).destroy({'id"; DROP TABLE tasks; --': 1}))
    assert exc.value.short_name == "MissingFieldError"
    assert recorder.statements == []


def test_include_attaches_related_rows(recorder):
    note = EntitySchema.describe("note", {"user_id": {"kind": FieldKind.INT}, "body": {"kind": FieldKind.STRING}})
    reg = SchemaRegistry([USER, note])
    recorder.one = {"id": 1, "email": "a@b.c"}
    recorder.many = [{"id": 9, "user_id": 1, "body": "x"}, {"id": 10, "user_id": 2, "body": "y"}]

    provider = PostgresProvider(USER, reg)
    row = asyncio.run(provider.find({"id": 1}, [Include("note", "user_id")]))

    assert row["notes"] == [{"id": 9, "user_id": 1, "body": "x"}]
    sql, args = recorder.statements[1]
    assert sql == 'SELECT * FROM "notes" WHERE "user_id" = ANY($1) ORDER BY "id"'
    assert args == ([1],)


def test_include_of_unknown_entity_fails(recorder):
    recorder.one = {"id": 1}
    with pytest.raises(errors.ApplicationError) as exc:
        asyncio.run(PostgresProvider(TASK).find({"id": 1}, [Include("ghost", "task_id")]))
    assert exc.value.short_name == "MissingModelNameError"
