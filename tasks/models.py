"""
tasks/models.py -- Domain dataclasses for TaskTrack tasks.

These are pure data containers with zero logic. The completed_at rule and
all permission checks live in tasks/service.py.

Separation of concerns: these dataclasses are the task domain's truth, just
as auth/models.py is the identity domain's truth. auth/ never imports this
module.
"""

from dataclasses import dataclass, field
from typing import Optional

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)

PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"
PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH)


@dataclass
class Task:
    """A unit of work created by one user and optionally assigned to another.

    created_by and assigned_to are user ids. They are weak references: deleting
    a user leaves its tasks in place.

    completed_at is stamped when status moves into "completed" and is not
    cleared if the task is later reopened.

    id is None before the record is written to the database.
    """

    title: str
    description: str
    due_date: str  # ISO 8601
    created_by: int
    priority: str = PRIORITY_MEDIUM  # "low" | "medium" | "high"
    status: str = STATUS_PENDING  # "pending" | "in_progress" | "completed"
    assigned_to: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    completed_at: Optional[str] = None  # ISO 8601
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class TaskQuery:
    """Filters, ordering, and paging for a task listing.

    visible_to is filled in by the service from the authorization policy; it
    is never taken from the request.
    """

    status: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[int] = None
    search: Optional[str] = None
    sort_by: str = "created_at"
    order: str = "desc"  # "asc" | "desc"
    visible_to: Optional[int] = None


@dataclass
class TaskStats:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
