"""Unit tests for tasks/service.py and tasks/store.py.

Covers:
- create: creator taken from the principal; unknown assignee rejected;
  created-completed tasks get completed_at
- completed_at: set on transition into completed, kept when leaving it,
  not re-stamped on completed -> completed
- get: TaskNotFound before AccessDenied; assignee may read
- update/delete/status/priority: creator and admin only; allow-listed fields
- list: visibility scoping, filters, search, sort, paging
- stats: scoped counts, all zeros when nothing is visible
- creator/assignee summaries resolved on every returned task
"""

import pytest

from auth.models import Principal, User
from core.errors import AccessDenied, TaskNotFound, ValidationFailed
from tasks.models import TaskQuery
from tasks.service import TaskDraft


@pytest.fixture
def people(user_store):
    """admin (bootstrap), creator, assignee, stranger -- as principals."""
    principals = []
    for name in ("admin", "creator", "assignee", "stranger"):
        uid = user_store.create_user(User(username=name, email=f"{name}@example.com", hashed_password="x"))
        user = user_store.get_by_id(uid)
        principals.append(Principal(id=user.id, email=user.email, role=user.role))
    return tuple(principals)


def _draft(**kwargs) -> TaskDraft:
    values = {"title": "Write report", "description": "Quarterly numbers", "due_date": "2030-01-01T00:00:00"}
    values.update(kwargs)
    return TaskDraft(**values)


@pytest.fixture
def shared_task(task_service, people):
    """A task created by `creator` and assigned to `assignee`."""
    _, creator, assignee, _ = people
    return task_service.create_task(creator, _draft(assigned_to=assignee.id)).task


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creator_and_summaries(self, task_service, people):
        _, creator, assignee, _ = people
        view = task_service.create_task(creator, _draft(assigned_to=assignee.id, tags=["q1", "finance"]))
        assert view.task.created_by == creator.id
        assert view.task.status == "pending"
        assert view.task.priority == "medium"
        assert view.task.tags == ["q1", "finance"]
        assert view.task.completed_at is None
        assert view.creator.username == "creator"
        assert view.assignee.username == "assignee"
        assert view.creator.hashed_password is None

    def test_unknown_assignee(self, task_service, people):
        _, creator, _, _ = people
        with pytest.raises(ValidationFailed):
            task_service.create_task(creator, _draft(assigned_to=999))

    def test_created_completed_gets_completed_at(self, task_service, people):
        _, creator, _, _ = people
        view = task_service.create_task(creator, _draft(status="completed"))
        assert view.task.completed_at is not None

    def test_invalid_priority(self, task_service, people):
        _, creator, _, _ = people
        with pytest.raises(ValidationFailed):
            task_service.create_task(creator, _draft(priority="urgent"))


# ---------------------------------------------------------------------------
# completed_at transitions
# ---------------------------------------------------------------------------


class TestCompletedAt:
    def test_set_on_completion_and_kept_after(self, task_service, people, shared_task):
        _, creator, _, _ = people
        done = task_service.set_status(creator, shared_task.id, "completed").task
        assert done.completed_at is not None

        reopened = task_service.set_status(creator, shared_task.id, "in_progress").task
        assert reopened.status == "in_progress"
        assert reopened.completed_at == done.completed_at

    def test_not_restamped_when_already_completed(self, task_service, people, shared_task):
        _, creator, _, _ = people
        first = task_service.set_status(creator, shared_task.id, "completed").task
        again = task_service.update_task(creator, shared_task.id, {"status": "completed", "title": "Done"}).task
        assert again.completed_at == first.completed_at

    def test_other_updates_leave_it_unset(self, task_service, people, shared_task):
        _, creator, _, _ = people
        view = task_service.set_priority(creator, shared_task.id, "high")
        assert view.task.priority == "high"
        assert view.task.completed_at is None


# ---------------------------------------------------------------------------
# Single-task access
# ---------------------------------------------------------------------------


class TestAccess:
    def test_missing_task_is_404_for_everyone(self, task_service, people):
        _, _, _, stranger = people
        with pytest.raises(TaskNotFound):
            task_service.get_task(stranger, 999)

    def test_read_rules(self, task_service, people, shared_task):
        admin, creator, assignee, stranger = people
        for principal in (admin, creator, assignee):
            assert task_service.get_task(principal, shared_task.id).task.id == shared_task.id
        with pytest.raises(AccessDenied):
            task_service.get_task(stranger, shared_task.id)

    def test_assignee_cannot_mutate(self, task_service, people, shared_task):
        _, _, assignee, _ = people
        with pytest.raises(AccessDenied):
            task_service.update_task(assignee, shared_task.id, {"title": "Mine now"})
        with pytest.raises(AccessDenied):
            task_service.set_status(assignee, shared_task.id, "completed")
        with pytest.raises(AccessDenied):
            task_service.delete_task(assignee, shared_task.id)

    def test_admin_can_mutate(self, task_service, people, shared_task):
        admin, _, _, _ = people
        assert task_service.update_task(admin, shared_task.id, {"title": "Edited"}).task.title == "Edited"
        task_service.delete_task(admin, shared_task.id)
        with pytest.raises(TaskNotFound):
            task_service.get_task(admin, shared_task.id)


class TestUpdate:
    @pytest.mark.parametrize("field", ["created_by", "completed_at", "id"])
    def test_forbidden_fields(self, task_service, people, shared_task, field):
        _, creator, _, _ = people
        with pytest.raises(ValidationFailed):
            task_service.update_task(creator, shared_task.id, {field: 1})

    def test_empty(self, task_service, people, shared_task):
        _, creator, _, _ = people
        with pytest.raises(ValidationFailed):
            task_service.update_task(creator, shared_task.id, {})

    def test_unassign_and_reassign(self, task_service, people, shared_task):
        _, creator, _, stranger = people
        view = task_service.update_task(creator, shared_task.id, {"assigned_to": None})
        assert view.task.assigned_to is None
        assert view.assignee is None
        view = task_service.update_task(creator, shared_task.id, {"assigned_to": stranger.id})
        assert view.assignee.username == "stranger"

    def test_reassign_to_unknown_user(self, task_service, people, shared_task):
        _, creator, _, _ = people
        with pytest.raises(ValidationFailed):
            task_service.update_task(creator, shared_task.id, {"assigned_to": 999})

    def test_tags_replaced(self, task_service, people, shared_task):
        _, creator, _, _ = people
        view = task_service.update_task(creator, shared_task.id, {"tags": ["a", "b"]})
        assert view.task.tags == ["a", "b"]


# ---------------------------------------------------------------------------
# Listing and stats
# ---------------------------------------------------------------------------


@pytest.fixture
def board(task_service, people):
    """Five tasks: three by creator (one assigned to assignee), two by stranger."""
    _, creator, assignee, stranger = people
    task_service.create_task(creator, _draft(title="Alpha", priority="high", assigned_to=assignee.id))
    task_service.create_task(creator, _draft(title="Bravo", description="Budget 100% review", status="completed"))
    task_service.create_task(creator, _draft(title="Charlie", priority="low", status="in_progress"))
    task_service.create_task(stranger, _draft(title="Delta", priority="high"))
    task_service.create_task(stranger, _draft(title="Echo"))
    return people


class TestList:
    def test_admin_sees_all(self, task_service, board):
        admin, _, _, _ = board
        assert task_service.list_tasks(admin).total == 5

    def test_scoped_to_created_or_assigned(self, task_service, board):
        _, creator, assignee, stranger = board
        assert task_service.list_tasks(creator).total == 3
        assert [v.task.title for v in task_service.list_tasks(assignee).items] == ["Alpha"]
        assert task_service.list_tasks(stranger).total == 2

    def test_visible_to_cannot_be_widened(self, task_service, board):
        _, _, assignee, _ = board
        page = task_service.list_tasks(assignee, TaskQuery(visible_to=None))
        assert page.total == 1

    def test_filters(self, task_service, board):
        admin, _, assignee, _ = board
        assert task_service.list_tasks(admin, TaskQuery(priority="high")).total == 2
        assert task_service.list_tasks(admin, TaskQuery(status="completed")).total == 1
        assert task_service.list_tasks(admin, TaskQuery(assigned_to=assignee.id)).total == 1

    def test_search_case_insensitive_and_literal(self, task_service, board):
        admin, _, _, _ = board
        assert [v.task.title for v in task_service.list_tasks(admin, TaskQuery(search="ALPHA")).items] == ["Alpha"]
        assert [v.task.title for v in task_service.list_tasks(admin, TaskQuery(search="100%")).items] == ["Bravo"]

    def test_sort_and_page(self, task_service, board):
        admin, _, _, _ = board
        query = TaskQuery(sort_by="title", order="asc")
        page = task_service.list_tasks(admin, query, page=2, limit=2)
        assert [v.task.title for v in page.items] == ["Charlie", "Delta"]
        assert page.total_pages == 3
        assert page.has_next_page and page.has_previous_page

    def test_default_order_newest_first(self, task_service, board):
        admin, _, _, _ = board
        titles = [v.task.title for v in task_service.list_tasks(admin).items]
        assert titles == ["Echo", "Delta", "Charlie", "Bravo", "Alpha"]

    def test_bad_sort_field(self, task_service, board):
        admin, _, _, _ = board
        with pytest.raises(ValidationFailed):
            task_service.list_tasks(admin, TaskQuery(sort_by="hashed_password"))


class TestStats:
    def test_admin_stats(self, task_service, board):
        admin, _, _, _ = board
        stats = task_service.get_task_stats(admin)
        assert stats.total == 5
        assert (stats.pending, stats.in_progress, stats.completed) == (3, 1, 1)
        assert (stats.high_priority, stats.medium_priority, stats.low_priority) == (2, 2, 1)

    def test_scoped_stats(self, task_service, board):
        _, _, assignee, _ = board
        stats = task_service.get_task_stats(assignee)
        assert stats.total == 1
        assert stats.high_priority == 1

    def test_empty_is_all_zeros(self, task_service, people):
        admin, _, _, _ = people
        stats = task_service.get_task_stats(admin)
        assert stats.total == 0
        assert stats.pending == stats.completed == stats.low_priority == 0
