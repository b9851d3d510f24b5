"""
tasks/service.py -- Task CRUD behind the authorization policy.

TaskService is the only caller of TaskStore. Every operation takes the
Principal from the request and consults auth.policy before reading or
writing; nothing here compares roles inline.

Order of checks on single-task operations: existence first (TaskNotFound),
then permission (AccessDenied).

completed_at rule:
  set when a write moves status into "completed" from any other status, or
  when a task is created already completed. Never cleared.

Returned tasks are wrapped in TaskView, which carries the creator and
assignee User records (credential stripped) so the HTTP layer can embed
their summaries without a second round trip per task.

Layer rule: may import from auth/ and core/, never from api/.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from auth import policy
from auth.models import Principal, User
from auth.service import strip_credential
from auth.store import UserStore
from core.errors import TaskNotFound, ValidationFailed
from core.pagination import Page, page_params
from tasks.models import PRIORITIES, STATUS_COMPLETED, STATUSES, Task, TaskQuery, TaskStats
from tasks.store import SORTABLE_FIELDS, TaskStore

logger = logging.getLogger("tasktrack.tasks")

UPDATABLE_FIELDS = frozenset({"title", "description", "due_date", "priority", "status", "assigned_to", "tags"})


@dataclass
class TaskView:
    task: Task
    creator: Optional[User] = None
    assignee: Optional[User] = None


@dataclass
class TaskDraft:
    """Caller-supplied fields for a new task. created_by comes from the principal."""

    title: str
    description: str
    due_date: str
    priority: str = "medium"
    status: str = "pending"
    assigned_to: Optional[int] = None
    tags: list[str] = field(default_factory=list)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskService:
    def __init__(self, tasks: TaskStore, users: UserStore) -> None:
        self.tasks = tasks
        self.users = users

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        principal: Principal,
        query: TaskQuery | None = None,
        *,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        """Return one page of the tasks the principal may see.

        query.visible_to is always overwritten from the policy, so a caller
        cannot widen its own scope by filling it in.
        """
        query = query or TaskQuery()
        if query.sort_by not in SORTABLE_FIELDS:
            raise ValidationFailed(f"Cannot sort by {query.sort_by!r}.")
        if query.order not in ("asc", "desc"):
            raise ValidationFailed("Order must be 'asc' or 'desc'.")
        query = dataclasses.replace(query, visible_to=policy.task_visibility(principal))

        params = page_params(page, limit)
        tasks, total = self.tasks.list_tasks(query, offset=params.offset, limit=params.limit)
        return Page(items=self._views(tasks), total=total, params=params)

    def get_task(self, principal: Principal, task_id: int) -> TaskView:
        task = self._get_or_404(task_id)
        policy.require(policy.can_access_task(principal, task))
        return self._views([task])[0]

    def get_task_stats(self, principal: Principal) -> TaskStats:
        return self.tasks.get_stats(policy.task_visibility(principal))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_task(self, principal: Principal, draft: TaskDraft) -> TaskView:
        self._check_enum("status", draft.status, STATUSES)
        self._check_enum("priority", draft.priority, PRIORITIES)
        if draft.assigned_to is not None:
            self._check_assignee(draft.assigned_to)

        task = Task(
            title=draft.title,
            description=draft.description,
            due_date=draft.due_date,
            created_by=principal.id,
            priority=draft.priority,
            status=draft.status,
            assigned_to=draft.assigned_to,
            tags=list(draft.tags),
            completed_at=_now_iso() if draft.status == STATUS_COMPLETED else None,
        )
        task_id = self.tasks.create_task(task)
        logger.info("Task %s created by user %s", task_id, principal.id)
        return self._views([self._get_or_404(task_id)])[0]

    def update_task(self, principal: Principal, task_id: int, changes: dict[str, Any]) -> TaskView:
        """Apply a partial update. Only UPDATABLE_FIELDS may appear in changes."""
        forbidden = set(changes) - UPDATABLE_FIELDS
        if forbidden:
            raise ValidationFailed(f"Field(s) cannot be updated: {', '.join(sorted(forbidden))}.")
        if not changes:
            raise ValidationFailed("No fields to update.")

        task = self._get_or_404(task_id)
        policy.require(policy.can_mutate_task(principal, task))

        if "status" in changes:
            self._check_enum("status", changes["status"], STATUSES)
        if "priority" in changes:
            self._check_enum("priority", changes["priority"], PRIORITIES)
        if changes.get("assigned_to") is not None:
            self._check_assignee(changes["assigned_to"])

        fields = dict(changes)
        if fields.get("status") == STATUS_COMPLETED and task.status != STATUS_COMPLETED:
            fields["completed_at"] = _now_iso()

        self.tasks.update_task(task_id, **fields)
        return self._views([self._get_or_404(task_id)])[0]

    def set_status(self, principal: Principal, task_id: int, status: str) -> TaskView:
        return self.update_task(principal, task_id, {"status": status})

    def set_priority(self, principal: Principal, task_id: int, priority: str) -> TaskView:
        return self.update_task(principal, task_id, {"priority": priority})

    def delete_task(self, principal: Principal, task_id: int) -> None:
        task = self._get_or_404(task_id)
        policy.require(policy.can_mutate_task(principal, task))
        self.tasks.delete_task(task_id)
        logger.info("Task %s deleted by user %s", task_id, principal.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_or_404(self, task_id: int) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFound()
        return task

    def _check_assignee(self, user_id: int) -> None:
        if self.users.get_by_id(user_id) is None:
            raise ValidationFailed("Assigned user does not exist.")

    @staticmethod
    def _check_enum(name: str, value: str, allowed: tuple[str, ...]) -> None:
        if value not in allowed:
            raise ValidationFailed(f"Invalid {name}: {value!r}.")

    def _views(self, tasks: list[Task]) -> list[TaskView]:
        """Resolve creator/assignee for a batch of tasks with one user query."""
        ids = {t.created_by for t in tasks} | {t.assigned_to for t in tasks if t.assigned_to is not None}
        people = {uid: strip_credential(u) for uid, u in self.users.get_many(ids).items()}
        return [
            TaskView(
                task=t,
                creator=people.get(t.created_by),
                assignee=people.get(t.assigned_to) if t.assigned_to is not None else None,
            )
            for t in tasks
        ]
