"""Unit tests for auth/policy.py -- pure authorization decisions.

Covers:
- can_access_task: creator, assignee, admin allowed; everyone else denied
- can_mutate_task: creator and admin allowed; non-creator assignee denied
- user roster: any principal reads, only admins manage
- task_visibility: None for admins, own id otherwise
- require(): raises AccessDenied on a failed check
"""

import pytest

from auth import policy
from auth.models import ROLE_ADMIN, ROLE_USER, Principal
from core.errors import AccessDenied
from tasks.models import Task

ADMIN = Principal(id=1, email="admin@example.com", role=ROLE_ADMIN)
CREATOR = Principal(id=2, email="creator@example.com", role=ROLE_USER)
ASSIGNEE = Principal(id=3, email="assignee@example.com", role=ROLE_USER)
STRANGER = Principal(id=4, email="stranger@example.com", role=ROLE_USER)


@pytest.fixture
def task() -> Task:
    return Task(
        id=10,
        title="Write report",
        description="Quarterly numbers",
        due_date="2030-01-01T00:00:00",
        created_by=CREATOR.id,
        assigned_to=ASSIGNEE.id,
    )


@pytest.mark.parametrize(
    "principal, expected",
    [(ADMIN, True), (CREATOR, True), (ASSIGNEE, True), (STRANGER, False)],
)
def test_can_access_task(task, principal, expected):
    assert policy.can_access_task(principal, task) is expected


@pytest.mark.parametrize(
    "principal, expected",
    [(ADMIN, True), (CREATOR, True), (ASSIGNEE, False), (STRANGER, False)],
)
def test_can_mutate_task(task, principal, expected):
    assert policy.can_mutate_task(principal, task) is expected


def test_unassigned_task_visible_only_to_creator_and_admin(task):
    task.assigned_to = None
    assert policy.can_access_task(CREATOR, task)
    assert policy.can_access_task(ADMIN, task)
    assert not policy.can_access_task(ASSIGNEE, task)


def test_user_roster_rules():
    assert policy.can_read_users(STRANGER)
    assert policy.can_manage_users(ADMIN)
    assert not policy.can_manage_users(CREATOR)


def test_task_visibility():
    assert policy.task_visibility(ADMIN) is None
    assert policy.task_visibility(CREATOR) == CREATOR.id


def test_require():
    policy.require(True)
    with pytest.raises(AccessDenied):
        policy.require(False)
