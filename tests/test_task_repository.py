from datetime import datetime

import pytest

from kanban_api.db import create_sqlite_repositories
from kanban_api.errors import NotFoundError, ValidationError
from kanban_api.repositories import EMAIL_TAKEN, TASK_NOT_FOUND, create_memory_repositories


@pytest.fixture(params=["memory", "sqlite"])
def repos(request, tmp_path):
    if request.param == "sqlite":
        return create_sqlite_repositories(str(tmp_path / "kanban.db"))
    return create_memory_repositories()


@pytest.fixture
def users(repos):
    return repos[0]


@pytest.fixture
def tasks(repos):
    return repos[1]


@pytest.fixture
def alice(users):
    return users.add("Alice", "a@x.com", "digest-a")


@pytest.fixture
def bob(users):
    return users.add("Bob", "b@x.com", "digest-b")


def not_found_message(fn, *args):
    with pytest.raises(NotFoundError) as exc:
        fn(*args)
    return exc.value.message


class TestCreateAndList:
    def test_list_empty(self, tasks, alice):
        assert tasks.list(alice) == []

    def test_create_defaults(self, tasks, alice):
        task = tasks.create(alice, {"title": "  Write spec  "})
        assert task["id"] >= 1
        assert task["user_id"] == alice["id"]
        assert task["title"] == "Write spec"
        assert task["column"] == "todo"
        assert task["description"] is None
        assert task["due_date"] is None
        assert task["done_at"] is None
        assert isinstance(task["created_at"], datetime)

    def test_create_all_fields(self, tasks, alice):
        due = datetime(2099, 12, 25)
        task = tasks.create(alice, {"title": "Ship", "description": "v1", "due_date": due, "column": "test"})
        assert task["description"] == "v1"
        assert task["due_date"] == due
        assert task["column"] == "test"

    def test_list_in_insertion_order_and_scoped(self, tasks, alice, bob):
        first = tasks.create(alice, {"title": "one"})
        tasks.create(bob, {"title": "bob's"})
        second = tasks.create(alice, {"title": "two"})
        assert [t["id"] for t in tasks.list(alice)] == [first["id"], second["id"]]
        assert [t["title"] for t in tasks.list(bob)] == ["bob's"]

    @pytest.mark.parametrize("column", ["backlog", "", "TODO", None])
    def test_invalid_column_rejected(self, tasks, alice, column):
        with pytest.raises(ValidationError):
            tasks.create(alice, {"title": "x", "column": column})
        assert tasks.list(alice) == []

    @pytest.mark.parametrize("fields", [{}, {"title": "   "}, {"title": None}])
    def test_title_required(self, tasks, alice, fields):
        with pytest.raises(ValidationError) as exc:
            tasks.create(alice, fields)
        assert exc.value.messages == ["Title can't be blank"]

    def test_unknown_fields_ignored(self, tasks, alice):
        task = tasks.create(alice, {"title": "x", "user_id": 999, "id": 5000})
        assert task["user_id"] == alice["id"]
        assert task["id"] != 5000

    def test_owner_is_required(self, tasks):
        with pytest.raises(TypeError):
            tasks.list(None)


class TestOwnershipScoping:
    def test_get_foreign_task_looks_like_missing_task(self, tasks, alice, bob):
        task = tasks.create(alice, {"title": "private"})
        foreign = not_found_message(tasks.get, bob, task["id"])
        missing = not_found_message(tasks.get, bob, 424242)
        assert foreign == missing == TASK_NOT_FOUND

    def test_update_foreign_task(self, tasks, alice, bob):
        task = tasks.create(alice, {"title": "private"})
        assert not_found_message(tasks.update, bob, task["id"], {"title": "hijack"}) == TASK_NOT_FOUND
        assert tasks.get(alice, task["id"])["title"] == "private"

    def test_delete_foreign_task(self, tasks, alice, bob):
        task = tasks.create(alice, {"title": "private"})
        assert not_found_message(tasks.delete, bob, task["id"]) == TASK_NOT_FOUND
        assert tasks.get(alice, task["id"])["id"] == task["id"]

    def test_deleting_user_cascades_to_tasks(self, users, tasks, alice, bob):
        task = tasks.create(alice, {"title": "a"})
        tasks.create(bob, {"title": "b"})
        assert users.delete(alice["id"]) is True
        assert users.get(alice["id"]) is None
        assert tasks.list(alice) == []
        assert not_found_message(tasks.get, alice, task["id"]) == TASK_NOT_FOUND
        assert [t["title"] for t in tasks.list(bob)] == ["b"]
        assert users.delete(alice["id"]) is False


class TestGetUpdateDelete:
    def test_repeated_get_is_stable(self, tasks, alice):
        task = tasks.create(alice, {"title": "same"})
        reads = [tasks.get(alice, task["id"]) for _ in range(3)]
        assert all(r == reads[0] for r in reads)
        assert reads[0] == task

    def test_partial_update_leaves_other_fields(self, tasks, alice):
        task = tasks.create(alice, {"title": "Partial", "description": "X"})
        updated = tasks.update(alice, task["id"], {"column": "doing"})
        assert updated["column"] == "doing"
        assert updated["title"] == "Partial"
        assert updated["description"] == "X"
        assert updated["updated_at"] >= task["updated_at"]

    def test_update_can_clear_optional_fields(self, tasks, alice):
        task = tasks.create(alice, {"title": "t", "description": "d", "due_date": datetime(2099, 1, 1)})
        updated = tasks.update(alice, task["id"], {"description": None, "due_date": None})
        assert updated["description"] is None
        assert updated["due_date"] is None

    @pytest.mark.parametrize("fields", [{"column": "archive"}, {"column": None}, {"title": ""}])
    def test_update_validation(self, tasks, alice, fields):
        task = tasks.create(alice, {"title": "t"})
        with pytest.raises(ValidationError):
            tasks.update(alice, task["id"], fields)
        assert tasks.get(alice, task["id"]) == task

    def test_update_missing(self, tasks, alice):
        assert not_found_message(tasks.update, alice, 999, {"title": "x"}) == TASK_NOT_FOUND

    def test_delete_then_delete_again(self, tasks, alice):
        task = tasks.create(alice, {"title": "gone"})
        assert tasks.delete(alice, task["id"]) is None
        assert not_found_message(tasks.get, alice, task["id"]) == TASK_NOT_FOUND
        assert not_found_message(tasks.delete, alice, task["id"]) == TASK_NOT_FOUND


class TestCompletionTimestamp:
    """
    done_at policy: a supplied value always wins; otherwise the server stamps it
    when a task enters 'done' and clears it when the task leaves 'done'.
    """

    def test_stamped_when_moved_to_done(self, tasks, alice):
        task = tasks.create(alice, {"title": "t"})
        done = tasks.update(alice, task["id"], {"column": "done"})
        assert isinstance(done["done_at"], datetime)

    def test_created_in_done_is_stamped(self, tasks, alice):
        assert tasks.create(alice, {"title": "t", "column": "done"})["done_at"] is not None

    def test_kept_while_staying_in_done(self, tasks, alice):
        task = tasks.create(alice, {"title": "t", "column": "done"})
        renamed = tasks.update(alice, task["id"], {"title": "renamed"})
        assert renamed["done_at"] == task["done_at"]

    def test_cleared_when_leaving_done(self, tasks, alice):
        task = tasks.create(alice, {"title": "t", "column": "done"})
        reopened = tasks.update(alice, task["id"], {"column": "doing"})
        assert reopened["done_at"] is None

    def test_client_value_wins(self, tasks, alice):
        stamp = datetime(2025, 3, 1, 9, 30)
        task = tasks.create(alice, {"title": "t"})
        done = tasks.update(alice, task["id"], {"column": "done", "done_at": stamp})
        assert done["done_at"] == stamp

    def test_explicit_null_wins_in_done(self, tasks, alice):
        task = tasks.create(alice, {"title": "t", "column": "done"})
        cleared = tasks.update(alice, task["id"], {"done_at": None})
        assert cleared["column"] == "done"
        assert cleared["done_at"] is None

    def test_kept_on_title_change_outside_done(self, tasks, alice):
        stamp = datetime(2025, 3, 1, 9, 30)
        task = tasks.create(alice, {"title": "t", "column": "todo", "done_at": stamp})
        renamed = tasks.update(alice, task["id"], {"title": "renamed"})
        assert renamed["done_at"] == stamp

    def test_kept_when_moving_between_open_columns(self, tasks, alice):
        stamp = datetime(2025, 3, 1, 9, 30)
        task = tasks.create(alice, {"title": "t", "column": "todo", "done_at": stamp})
        moved = tasks.update(alice, task["id"], {"column": "doing"})
        assert moved["column"] == "doing"
        assert moved["done_at"] == stamp
        assert tasks.get(alice, task["id"])["done_at"] == stamp


class TestIdRange:
    @pytest.mark.parametrize("task_id", [0, -1, 2**63, 2**64 + 5])
    def test_unstorable_id_is_not_found(self, tasks, alice, task_id):
        tasks.create(alice, {"title": "t"})
        assert not_found_message(tasks.get, alice, task_id) == TASK_NOT_FOUND
        assert not_found_message(tasks.update, alice, task_id, {"title": "x"}) == TASK_NOT_FOUND
        assert not_found_message(tasks.delete, alice, task_id) == TASK_NOT_FOUND
        assert len(tasks.list(alice)) == 1


class TestUserStorage:
    def test_duplicate_email_rejected_by_storage(self, users, alice):
        before = users.count()
        for name in ("Alice Again", "Mallory"):
            with pytest.raises(ValidationError) as exc:
                users.add(name, "a@x.com", "digest-x")
            assert exc.value.messages == [EMAIL_TAKEN]
        assert users.count() == before
        assert users.get_by_email("a@x.com")["name"] == "Alice"
