"""
auth/policy.py -- Authorization decisions for TaskTrack.

Every role-dependent decision in the codebase is made here, and every
mutating or listing operation consults these functions instead of comparing
roles inline. Keeping the rules in one place stops endpoints from drifting
apart (e.g. one route letting assignees edit while another does not).

All functions are pure: they look only at the principal and the resource,
never at a store. Tasks are duck-typed on created_by / assigned_to so this
module does not import tasks/.

Rules:
  read task    -- admin, creator, or assignee
  mutate task  -- admin or creator (assignees may read but not edit/delete)
  read users   -- any authenticated principal (assignment pickers need it)
  manage users -- admin only
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Principal
from core.errors import AccessDenied


class TaskLike(Protocol):
    created_by: int
    assigned_to: int | None


def can_access_task(principal: Principal, task: TaskLike) -> bool:
    return principal.is_admin or principal.id == task.created_by or principal.id == task.assigned_to


def can_mutate_task(principal: Principal, task: TaskLike) -> bool:
    return principal.is_admin or principal.id == task.created_by


def can_read_users(principal: Principal) -> bool:
    return principal is not None


def can_manage_users(principal: Principal) -> bool:
    return principal.is_admin


def task_visibility(principal: Principal) -> int | None:
    """Return the user id list/aggregate queries must be scoped to.

    None means unrestricted (admins see every task). Otherwise the query is
    limited to tasks the returned user created or is assigned to.
    """
    return None if principal.is_admin else principal.id


def require(allowed: bool) -> None:
    """Raise AccessDenied unless a policy check passed."""
    if not allowed:
        raise AccessDenied()
