import asyncio
from datetime import timedelta

import asyncpg
import pytest

from core import errors
from core.result import Err, Ok
from entities import SchemaRegistry
from mediation.mediator import Mediator


def _create(mediator, **item):
    result = asyncio.run(mediator.create_one(item))
    assert isinstance(result, Ok), result
    return result.value


def _stored(mediator):
    return asyncio.run(mediator.get_all({"sort": "id"})).unwrap()


def test_unknown_model_name_is_rejected():
    with pytest.raises(errors.ApplicationError) as exc:
        Mediator("spaceship")
    assert exc.value.short_name == "MissingModelNameError"
    assert exc.value.id == 90001


def test_empty_model_name_is_rejected():
    with pytest.raises(errors.ApplicationError):
        Mediator("", registry=SchemaRegistry())


def test_create_returns_only_managed_fields(tasks):
    created = _create(tasks, description="buy milk", completed=False)
    assert set(created) == {"id", "created_at", "updated_at"}
    assert created["id"] == 1


def test_create_ignores_caller_managed_fields(tasks):
    created = _create(tasks, id=99, description="x", completed=False, updated_at="1999-01-01T00:00:00Z")
    assert created["id"] == 1
    assert created["updated_at"].year == 2024


def test_create_does_not_mutate_caller_payload(tasks):
    payload = {"id": 5, "description": "x", "completed": True}
    asyncio.run(tasks.create_one(payload))
    assert payload == {"id": 5, "description": "x", "completed": True}


def test_create_with_unknown_fields_writes_nothing(tasks, store):
    result = asyncio.run(tasks.create_one({"description": "x", "colour": "red", "size": 3}))
    assert isinstance(result, Err)
    assert result.error.short_name == "ErrorCollection"
    assert [e.short_name for e in result.error.errors] == ["MissingFieldError", "MissingFieldError"]
    assert store.calls == []


def test_single_unknown_field_is_not_wrapped(tasks):
    result = asyncio.run(tasks.create_one({"colour": "red"}))
    assert result.error.short_name == "MissingFieldError"


def test_get_one_found_and_missing(tasks):
    _create(tasks, description="a", completed=False)
    row = asyncio.run(tasks.get_one({"id": "1"})).unwrap()
    assert row["description"] == "a"

    missing = asyncio.run(tasks.get_one({"id": "42"}))
    assert missing.error.short_name == "ItemNotFoundError"
    assert "'42'" in missing.error.message
    assert missing.error.status == 404


def test_get_all_applies_filters_sort_and_paging(tasks):
    for name, done in (("c", True), ("a", False), ("b", True)):
        _create(tasks, description=name, completed=done)

    rows = asyncio.run(tasks.get_all({"completed": "true", "sort": "-description"})).unwrap()
    assert [r["description"] for r in rows] == ["c", "b"]

    page = asyncio.run(tasks.get_all({"sort": "description", "limit": "1", "offset": "1"})).unwrap()
    assert [r["description"] for r in page] == ["b"]

    slim = asyncio.run(tasks.get_all({"fields": "id,description", "sort": "id"})).unwrap()
    assert slim[0] == {"id": 1, "description": "c"}


def test_get_all_is_repeatable(tasks):
    for name in ("x", "y", "z"):
        _create(tasks, description=name, completed=False)
    first = asyncio.run(tasks.get_all({"completed": "false"})).unwrap()
    second = asyncio.run(tasks.get_all({"completed": "false"})).unwrap()
    assert first == second


def test_get_all_rejects_bad_query_without_reading(tasks, store):
    result = asyncio.run(tasks.get_all({"limit": "0", "ghost": "1"}))
    assert result.error.short_name == "ErrorCollection"
    assert {e.short_name for e in result.error.errors} == {"LimitError", "MissingFieldError"}
    assert "find_all" not in store.calls


def test_update_one_returns_id_and_new_timestamp(tasks):
    created = _create(tasks, description="a", completed=False)
    item = {"description": "b", "updated_at": created["updated_at"].isoformat()}
    updated = asyncio.run(tasks.update_one(item, {"id": "1"})).unwrap()
    assert set(updated) == {"id", "updated_at"}
    assert updated["updated_at"] > created["updated_at"]
    assert asyncio.run(tasks.get_one({"id": 1})).unwrap()["description"] == "b"


def test_stale_update_is_rejected_and_changes_nothing(tasks):
    created = _create(tasks, description="a", completed=False)
    stale = (created["updated_at"] - timedelta(seconds=5)).isoformat()
    result = asyncio.run(tasks.update_one({"description": "b", "updated_at": stale}, {"id": "1"}))

    assert result.error.short_name == "ConcurrencyError"
    assert result.error.status == 409
    assert result.error.updated_item["description"] == "a"
    assert asyncio.run(tasks.get_one({"id": 1})).unwrap()["description"] == "a"


def test_newer_timestamp_is_accepted(tasks):
    created = _create(tasks, description="a", completed=False)
    newer = (created["updated_at"] + timedelta(hours=1)).isoformat()
    result = asyncio.run(tasks.update_one({"description": "b", "updated_at": newer}, {"id": "1"}))
    assert isinstance(result, Ok)


def test_stale_update_allowed_without_protection(users):
    asyncio.run(users.create_one({"first_name": "a", "last_name": "b", "email": "e", "password": "p"}))
    result = asyncio.run(users.update_one({"first_name": "z", "updated_at": "2000-01-01T00:00:00Z"}, {"id": "1"}))
    assert isinstance(result, Ok)


def test_update_one_missing_row(tasks):
    result = asyncio.run(tasks.update_one({"description": "b"}, {"id": "7"}))
    assert result.error.short_name == "ItemNotFoundError"


def test_update_one_strips_path_params_from_patch(tasks, task_provider):
    _create(tasks, description="a", completed=False)
    asyncio.run(tasks.update_one({"id": "1", "description": "b", "created_at": "2000-01-01"}, {"id": "1"}))
    row = asyncio.run(tasks.get_one({"id": 1})).unwrap()
    assert row["id"] == 1
    assert row["created_at"].year == 2024


def test_update_many_reports_affected_count(tasks):
    for name in ("a", "b", "c"):
        _create(tasks, description=name, completed=False)
    result = asyncio.run(tasks.update_many({"id": 50, "completed": True}, {"description": "b"})).unwrap()
    assert result == {"affectedCount": 1}
    assert [r["completed"] for r in _stored(tasks)] == [False, True, False]


def test_delete_one(tasks):
    _create(tasks, description="a", completed=False)
    assert asyncio.run(tasks.delete_one({"id": "1"})).unwrap() == {"id": "1"}
    assert _stored(tasks) == []


def test_delete_one_missing_row_deletes_nothing(tasks):
    _create(tasks, description="a", completed=False)
    result = asyncio.run(tasks.delete_one({"id": "9"}))
    assert result.error.short_name == "ItemNotFoundError"
    assert result.error.info == {"id": "9", "modelName": "task"}
    assert len(_stored(tasks)) == 1


def test_delete_all_uses_filters_only(tasks):
    for name, done in (("a", True), ("b", False), ("c", True)):
        _create(tasks, description=name, completed=done)
    count = asyncio.run(tasks.delete_all({"completed": "true", "limit": "1", "sort": "id"})).unwrap()
    assert count == 2
    assert [r["description"] for r in _stored(tasks)] == ["b"]


def test_delete_all_validates_filters(tasks, store):
    result = asyncio.run(tasks.delete_all({"ghost": "1"}))
    assert result.error.short_name == "MissingFieldError"
    assert "destroy" not in store.calls


def test_storage_errors_propagate_from_single_operations(tasks, task_provider):
    task_provider.fail_with["create"] = asyncpg.exceptions.ForeignKeyViolationError("fk")
    with pytest.raises(asyncpg.exceptions.ForeignKeyViolationError):
        asyncio.run(tasks.create_one({"description": "a", "completed": False}))


def test_batch_commits_all_operations(tasks, store):
    _create(tasks, description="old", completed=False)
    _create(tasks, description="doomed", completed=False)
    items = {
        "createItems": [{"description": "new", "completed": False}],
        "updateItems": [{"id": 1, "completed": True}],
        "deleteItems": [{"id": 2}],
    }
    result = asyncio.run(tasks.batch_create_update_delete(items, {})).unwrap()

    assert [r["id"] for r in result["createResults"]] == [3]
    assert [r["id"] for r in result["updateResults"]] == [1]
    assert result["deleteResults"] == [{"id": 2}]
    assert store.commits == 1 and store.rollbacks == 0
    assert [(r["id"], r["description"], r["completed"]) for r in _stored(tasks)] == [
        (1, "old", True),
        (3, "new", False),
    ]


def test_batch_with_invalid_create_item_touches_no_storage(tasks, store):
    _create(tasks, description="a", completed=False)
    store.calls.clear()
    items = {
        "createItems": [{"description": "x", "colour": "red"}],
        "updateItems": [{"id": 1, "completed": True}],
        "deleteItems": [{"id": 1}],
    }
    result = asyncio.run(tasks.batch_create_update_delete(items, {}))

    assert result.error.short_name == "BatchError"
    assert [e.short_name for e in result.error.create_errors] == ["MissingFieldError"]
    assert result.error.update_errors == []
    assert result.error.delete_errors == []
    assert store.calls == []


def test_batch_rejects_unknown_top_level_keys(tasks, store):
    result = asyncio.run(tasks.batch_create_update_delete({"createItems": [], "upsertItems": []}, {}))
    assert result.error.short_name == "BatchError"
    assert [e.short_name for e in result.error.errors] == ["InvalidPropertyError"]
    assert "upsertItems" in result.error.errors[0].message
    assert store.calls == []


def test_batch_rolls_back_when_one_update_fails(tasks, store):
    _create(tasks, description="keep", completed=False)
    items = {
        "createItems": [{"description": "n1", "completed": False}, {"description": "n2", "completed": False}],
        "updateItems": [{"id": 1, "completed": True}, {"id": 404, "completed": True}],
    }
    result = asyncio.run(tasks.batch_create_update_delete(items, {}))

    assert result.error.short_name == "BatchError"
    assert [e.short_name for e in result.error.update_errors] == ["ItemNotFoundError"]
    assert result.error.create_errors == []
    assert store.rollbacks == 1 and store.commits == 0
    assert [(r["description"], r["completed"]) for r in _stored(tasks)] == [("keep", False)]


def test_batch_accumulates_storage_failures(tasks, task_provider, store):
    task_provider.fail_with["create"] = asyncpg.exceptions.ForeignKeyViolationError("fk")
    items = {"createItems": [{"description": "a", "completed": False}]}
    result = asyncio.run(tasks.batch_create_update_delete(items, {}))

    assert result.error.short_name == "BatchError"
    assert result.error.create_errors[0].id == 91001
    assert result.error.create_errors[0].status == 409
    assert store.rollbacks == 1


def test_batch_merges_path_params_into_lookups(tasks, store):
    _create(tasks, description="scoped", completed=False)
    items = {"deleteItems": [{"id": 1}]}
    result = asyncio.run(tasks.batch_create_update_delete(items, {"description": "other"}))
    assert [e.short_name for e in result.error.delete_errors] == ["ItemNotFoundError"]
    assert len(_stored(tasks)) == 1


def test_batch_rejects_non_list_sections(tasks, store):
    result = asyncio.run(tasks.batch_create_update_delete({"createItems": {"description": "x"}}, {}))
    assert [e.short_name for e in result.error.create_errors] == ["BadInputError"]
    assert store.calls == []


def test_filter_value_of_wrong_kind_is_an_err(tasks, store):
    _create(tasks, description="a", completed=False)
    calls = len(store.calls)

    result = asyncio.run(tasks.get_all({"completed": "maybe"}))

    assert isinstance(result, Err)
    assert result.error.short_name == "BadInputError"
    assert len(store.calls) == calls


def test_payload_value_of_wrong_kind_is_an_err(tasks, store):
    created = _create(tasks, description="a", completed=False)

    create = asyncio.run(tasks.create_one({"description": 5, "completed": "nope"}))
    update = asyncio.run(tasks.update_one({"description": 5}, {"id": created["id"]}))

    assert create.error.short_name == "ErrorCollection"
    assert [e.short_name for e in create.error.errors] == ["BadInputError", "BadInputError"]
    assert update.error.short_name == "BadInputError"
    assert _stored(tasks)[0]["description"] == "a"


def test_criteria_value_of_wrong_kind_is_an_err(tasks):
    _create(tasks, description="a", completed=False)

    assert asyncio.run(tasks.get_one({"id": "abc"})).error.short_name == "BadInputError"
    assert asyncio.run(tasks.delete_one({"id": "abc"})).error.short_name == "BadInputError"
    assert asyncio.run(tasks.delete_all({"completed": "maybe"})).error.short_name == "BadInputError"
    assert len(_stored(tasks)) == 1
