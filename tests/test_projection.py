from mediation import projection


def test_pick_keeps_only_present_allowed_keys():
    row = {"id": 1, "description": "a", "updated_at": "t"}
    assert projection.pick(row, projection.CREATE_RESULT_FIELDS) == {"id": 1, "updated_at": "t"}


def test_writable_strips_managed_and_extra_keys_without_mutating():
    item = {"id": 1, "created_at": "x", "updated_at": "y", "user_id": 4, "description": "d"}
    assert projection.writable(item, ["user_id"]) == {"description": "d"}
    assert len(item) == 5
