"""
Tests for the SQLite board store.
"""
import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

from taskboard.errors import PersistenceError
from taskboard.schema import Column, Project, Task, TaskStatus, User, utc_now
from taskboard.store import BoardStore


def _seed(store):
    store.save_user(User(id="u1", first_name="Una", last_name="One"))
    store.save_user(User(id="u2", first_name="Tom", last_name="Two"))
    store.save_user(User(id="u3", first_name="Tia", last_name="Three"))
    project = Project(id="p1", key="OPS", name="Ops", owner_id="u1")
    column = Column(id="c1", project_id="p1", name="To Do", position=1)
    store.create_project(project, [column])
    return project, column


def _task(n, position, column_id="c1", **kwargs):
    return Task(id=f"t{n}", key=f"OPS-{n}", title=f"Task {n}", project_id="p1",
                column_id=column_id, position=position, creator_id="u1", **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tasks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_store_insert_and_get():
    """Tasks survive a round trip through SQLite"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    try:
        store = BoardStore(db_path)
        _seed(store)
        task = _task(1, 1.0, description="desc", assignee_id="u2")
        task.apply_status(TaskStatus.DONE)
        store.insert_task(task)

        loaded = store.get_task("t1")
        assert loaded is not None
        assert loaded.key == "OPS-1"
        assert loaded.description == "desc"
        assert loaded.status == TaskStatus.DONE
        assert loaded.completed_at == task.completed_at
        assert loaded.assignee_id == "u2"
    finally:
        Path(db_path).unlink(missing_ok=True)


def test_missing_task_is_none(store):
    assert store.get_task("nope") is None


def test_column_order_breaks_ties_by_creation(store):
    _seed(store)
    base = utc_now()
    store.insert_task(_task(1, 2.0, created_at=base))
    store.insert_task(_task(2, 1.0, created_at=base + timedelta(seconds=1)))
    store.insert_task(_task(3, 2.0, created_at=base + timedelta(seconds=2)))
    store.insert_task(_task(4, 2.0, created_at=base - timedelta(seconds=1)))

    assert [t.id for t in store.list_column_tasks("c1")] == ["t2", "t4", "t1", "t3"]
    assert store.last_task_in_column("c1").id == "t3"


def test_last_task_in_empty_column(store):
    _seed(store)
    assert store.last_task_in_column("c1") is None


def test_duplicate_key_is_persistence_error(store):
    _seed(store)
    store.insert_task(_task(1, 1.0))
    dup = _task(1, 2.0)
    dup.id = "other"
    with pytest.raises(PersistenceError) as exc:
        store.insert_task(dup)
    # No SQL in the caller-facing message
    assert "INSERT" not in exc.value.message
    assert "UNIQUE" not in exc.value.message


def test_update_task(store):
    _seed(store)
    store.insert_task(_task(1, 1.0))
    task = store.get_task("t1")
    task.position = 0.5
    task.apply_status(TaskStatus.IN_PROGRESS)
    store.update_task(task)
    assert store.get_task("t1").position == 0.5
    assert store.get_task("t1").status == TaskStatus.IN_PROGRESS


def test_update_missing_task_fails(store):
    _seed(store)
    with pytest.raises(PersistenceError):
        store.update_task(_task(9, 1.0))


def test_task_key_exists(store):
    _seed(store)
    store.insert_task(_task(1, 1.0))
    assert store.task_key_exists("OPS-1")
    assert not store.task_key_exists("OPS-2")


def test_set_task_positions(store):
    _seed(store)
    store.insert_task(_task(1, 1.0))
    store.insert_task(_task(2, 1.0))
    store.insert_task(_task(3, 0.5))
    store.set_task_positions([("t3", 1.0), ("t1", 2.0), ("t2", 3.0)])
    tasks = store.list_column_tasks("c1")
    assert [(t.id, t.position) for t in tasks] == [("t3", 1.0), ("t1", 2.0), ("t2", 3.0)]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Membership & workload
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_is_participant(store):
    _seed(store)
    store.add_member("p1", "u2")
    assert store.is_participant("p1", "u1")
    assert store.is_participant("p1", "u2")
    assert not store.is_participant("p1", "u3")
    assert not store.is_participant("p1", "")


def test_candidates_owner_first_then_members(store):
    _seed(store)
    store.add_member("p1", "u3")
    store.add_member("p1", "u2")
    store.add_member("p1", "u1")  # owner listed once
    assert [c.id for c in store.list_candidates("p1")] == ["u1", "u3", "u2"]


def test_candidates_carry_completed_counts(store):
    _seed(store)
    store.add_member("p1", "u2")
    done = _task(1, 1.0, assignee_id="u2")
    done.apply_status(TaskStatus.DONE)
    store.insert_task(done)
    store.insert_task(_task(2, 2.0, assignee_id="u2"))
    counts = {c.id: c.completed_count for c in store.list_candidates("p1")}
    assert counts == {"u1": 0, "u2": 1}


def test_count_in_progress(store):
    _seed(store)
    store.insert_task(_task(1, 1.0, assignee_id="u1", status=TaskStatus.IN_PROGRESS))
    store.insert_task(_task(2, 2.0, assignee_id="u1", status=TaskStatus.IN_PROGRESS))
    store.insert_task(_task(3, 3.0, assignee_id="u2", status=TaskStatus.IN_PROGRESS))
    store.insert_task(_task(4, 4.0, assignee_id="u2", status=TaskStatus.TODO))

    assert store.count_in_progress("p1", ["u1", "u2", "u3"]) == {"u1": 2, "u2": 1}
    assert store.count_in_progress("other", ["u1"]) == {}
    assert store.count_in_progress("p1", []) == {}


def test_remove_member(store):
    _seed(store)
    store.add_member("p1", "u2")
    assert store.remove_member("p1", "u2")
    assert not store.is_participant("p1", "u2")
    assert not store.remove_member("p1", "u2")


def test_member_role(store):
    _seed(store)
    store.add_member("p1", "u2", "ADMIN")
    assert store.member_role("p1", "u1") == "OWNER"
    assert store.member_role("p1", "u2") == "ADMIN"
    assert store.member_role("p1", "u3") is None


def test_list_members_owner_first(store):
    _seed(store)
    store.add_member("p1", "u3")
    store.add_member("p1", "u2", "ADMIN")
    store.add_member("p1", "u1")  # owner listed once
    members = store.list_members("p1")
    assert [(m["user"]["id"], m["role"]) for m in members] == [
        ("u1", "OWNER"), ("u3", "MEMBER"), ("u2", "ADMIN"),
    ]
    assert members[1]["user"]["firstName"] == "Tia"
    assert all(m["joinedAt"] for m in members)


def test_list_projects_for(store):
    _seed(store)
    store.create_project(Project(id="p2", key="DEV", name="Dev", owner_id="u2"), [])
    store.add_member("p1", "u2")
    assert [p.id for p in store.list_projects_for("u2")] == ["p2", "p1"]
    assert [p.id for p in store.list_projects_for("u1")] == ["p1"]
    assert store.list_projects_for("u3") == []


def test_columns_in_board_order(store):
    _seed(store)
    store.save_column(Column(id="c0", project_id="p1", name="Ideas", position=0.5))
    store.save_column(Column(id="c2", project_id="p1", name="Done", position=2, is_default=True))
    columns = store.list_columns("p1")
    assert [c.id for c in columns] == ["c0", "c1", "c2"]
    assert columns[2].is_default
