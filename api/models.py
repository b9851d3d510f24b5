"""
API request and response models for TaskTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tasks/models.py, which own the internal domain representation. Route handlers
map between the two.

Wire format: JSON field names are camelCase (firstName, dueDate, ...). Every
model derives from ApiModel, whose alias generator produces the camelCase
names; populate_by_name lets request bodies use either form.

Separation of concerns: domain dataclasses = domain truth; api/ models = API
contract. UserResponse has no password field, so a credential can never be
serialized by accident.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from core.pagination import Page
from tasks.models import TaskStats
from tasks.service import TaskView

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    user = "user"


class StatusEnum(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"


class PriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class SortFieldEnum(str, Enum):
    created_at = "created_at"
    updated_at = "updated_at"
    due_date = "due_date"
    priority = "priority"
    status = "status"
    title = "title"


class SortOrderEnum(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ErrorDetail(ApiModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(ApiModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class ApiResponse(ApiModel, Generic[T]):
    """Top-level success envelope: {success, message?, data?}."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class Pagination(ApiModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def from_page(cls, page: Page) -> "Pagination":
        return cls(
            current_page=page.params.page,
            total_pages=page.total_pages,
            total_items=page.total,
            items_per_page=page.params.limit,
            has_next_page=page.has_next_page,
            has_previous_page=page.has_previous_page,
        )


class PaginatedData(ApiModel, Generic[T]):
    items: list[T]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(ApiModel):
    """A user as clients see it. There is no password field by construction."""

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: RoleEnum
    is_active: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserSummary(ApiModel):
    """Embedded creator/assignee on task responses."""

    id: int
    username: str
    email: str
    first_name: str
    last_name: str

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["UserSummary"]:
        if user is None:
            return None
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )


class RegisterRequest(ApiModel):
    """Request body for POST /api/v1/auth/register. Role is not accepted."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(default="", max_length=50)
    last_name: str = Field(default="", max_length=50)


class LoginRequest(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1, max_length=128)


class UserCreate(RegisterRequest):
    """Request body for POST /api/v1/users (admin). Role is honored here."""

    role: RoleEnum = RoleEnum.user
    is_active: bool = True


class UserUpdate(ApiModel):
    """Request body for PUT /api/v1/users/{id}.

    Only the fields the caller actually sent are applied (exclude_unset).
    role and password have no field here; extra="forbid" turns an attempt to
    send them into a 422 instead of a silent drop.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    username: Optional[str] = Field(default=None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: Optional[str] = Field(default=None, max_length=254, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None


class RoleUpdate(ApiModel):
    role: RoleEnum


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthData(ApiModel):
    """Payload for register/login. The refresh token travels in a cookie only."""

    user: UserResponse
    access_token: str


class AccessTokenData(ApiModel):
    access_token: str


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    """Due dates are kept in UTC at whole seconds so the stored text sorts
    chronologically. Naive values are read as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _clean_tags(values: list[str]) -> list[str]:
    """Strip tags, drop empties, and deduplicate while preserving order."""
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        tag = str(v).strip()
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


class TaskCreate(ApiModel):
    """Request body for POST /api/v1/tasks."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=2000)
    due_date: datetime
    priority: PriorityEnum = PriorityEnum.medium
    status: StatusEnum = StatusEnum.pending
    assigned_to: Optional[int] = Field(default=None, ge=1)
    tags: list[str] = Field(default_factory=list, max_length=20)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, values: list[str]) -> list[str]:
        return _clean_tags(values)

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TaskUpdate(ApiModel):
    """Request body for PUT /api/v1/tasks/{id}. Partial: unset fields are left alone."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    due_date: Optional[datetime] = None
    priority: Optional[PriorityEnum] = None
    status: Optional[StatusEnum] = None
    # An explicit null unassigns the task.
    assigned_to: Optional[int] = Field(default=None, ge=1)
    tags: Optional[list[str]] = Field(default=None, max_length=20)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, values: Optional[list[str]]) -> Optional[list[str]]:
        return None if values is None else _clean_tags(values)

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else _as_utc(value)


class StatusUpdate(ApiModel):
    status: StatusEnum


class PriorityUpdate(ApiModel):
    priority: PriorityEnum


class TaskResponse(ApiModel):
    id: int
    title: str
    description: str
    due_date: str
    priority: PriorityEnum
    status: StatusEnum
    created_by: Optional[UserSummary]
    assigned_to: Optional[UserSummary] = None
    tags: list[str] = Field(default_factory=list)
    completed_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_view(cls, view: TaskView) -> "TaskResponse":
        """Build a TaskResponse from a service TaskView (Factory Method)."""
        task = view.task
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=task.priority,
            status=task.status,
            created_by=UserSummary.from_user(view.creator),
            assigned_to=UserSummary.from_user(view.assignee),
            tags=task.tags,
            completed_at=task.completed_at,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskStatsResponse(ApiModel):
    total: int
    pending: int
    # Keyed by the status value itself, like the other status counts.
    in_progress: int = Field(alias="in_progress")
    completed: int
    high_priority: int
    medium_priority: int
    low_priority: int

    @classmethod
    def from_stats(cls, stats: TaskStats) -> "TaskStatsResponse":
        return cls(
            total=stats.total,
            pending=stats.pending,
            in_progress=stats.in_progress,
            completed=stats.completed,
            high_priority=stats.high_priority,
            medium_priority=stats.medium_priority,
            low_priority=stats.low_priority,
        )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(ApiModel):
    """Response for GET /api/v1/health.

    status is "healthy" when every component reports "ok", else "degraded".
    """

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]
