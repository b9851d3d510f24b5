"""
api/routes/v1/tasks.py -- Task REST endpoints.

Routes:
  GET    /api/v1/tasks/stats          -- status/priority counts over visible tasks
  GET    /api/v1/tasks                -- filtered, sorted, paginated list
  POST   /api/v1/tasks                -- create a task owned by the caller (201)
  GET    /api/v1/tasks/{id}           -- single task
  PUT    /api/v1/tasks/{id}           -- partial update (creator or admin)
  DELETE /api/v1/tasks/{id}           -- delete (creator or admin)
  PATCH  /api/v1/tasks/{id}/status    -- status transition (creator or admin)
  PATCH  /api/v1/tasks/{id}/priority  -- priority change (creator or admin)

All routes require a bearer token. Visibility and mutation rules are applied
by tasks.service.TaskService through auth.policy; handlers here only map HTTP
to service calls.

Route order: /tasks/stats is registered before /tasks/{task_id} so "stats" is
never parsed as a task id.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    ApiResponse,
    PaginatedData,
    Pagination,
    PriorityEnum,
    PriorityUpdate,
    SortFieldEnum,
    SortOrderEnum,
    StatusEnum,
    StatusUpdate,
    TaskCreate,
    TaskResponse,
    TaskStatsResponse,
    TaskUpdate,
)
from auth.dependencies import get_current_principal
from auth.models import Principal
from tasks.models import TaskQuery
from tasks.service import TaskDraft, TaskService

# Auth policy: every route requires auth (get_current_principal).
router = APIRouter()

# Fields on TaskUpdate where an explicit null carries meaning.
_NULLABLE_UPDATE_FIELDS = frozenset({"assigned_to"})


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


@router.get("/tasks/stats", response_model=ApiResponse[TaskStatsResponse])
def task_stats(
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskStatsResponse]:
    """Counts are scoped exactly like GET /tasks: admins see everything."""
    return ApiResponse[TaskStatsResponse](data=TaskStatsResponse.from_stats(tasks.get_task_stats(principal)))


@router.get("/tasks", response_model=ApiResponse[PaginatedData[TaskResponse]])
def list_tasks(
    status: Optional[StatusEnum] = None,
    priority: Optional[PriorityEnum] = None,
    assigned_to: Optional[int] = Query(default=None, alias="assignedTo", ge=1),
    search: Optional[str] = Query(default=None, max_length=200),
    sort_by: SortFieldEnum = Query(default=SortFieldEnum.created_at, alias="sortBy"),
    order: SortOrderEnum = SortOrderEnum.desc,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[PaginatedData[TaskResponse]]:
    query = TaskQuery(
        status=status.value if status else None,
        priority=priority.value if priority else None,
        assigned_to=assigned_to,
        search=search or None,
        sort_by=sort_by.value,
        order=order.value,
    )
    result = tasks.list_tasks(principal, query, page=page, limit=limit)
    return ApiResponse[PaginatedData[TaskResponse]](
        data=PaginatedData[TaskResponse](
            items=[TaskResponse.from_view(v) for v in result.items],
            pagination=Pagination.from_page(result),
        )
    )


@router.post("/tasks", response_model=ApiResponse[TaskResponse], status_code=201)
def create_task(
    body: TaskCreate,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskResponse]:
    draft = TaskDraft(
        title=body.title,
        description=body.description,
        # Same ISO rendering as PUT, which dumps the body in JSON mode.
        due_date=body.model_dump(mode="json")["due_date"],
        priority=body.priority.value,
        status=body.status.value,
        assigned_to=body.assigned_to,
        tags=body.tags,
    )
    view = tasks.create_task(principal, draft)
    return ApiResponse[TaskResponse](message="Task created successfully", data=TaskResponse.from_view(view))


@router.get("/tasks/{task_id}", response_model=ApiResponse[TaskResponse])
def get_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskResponse]:
    return ApiResponse[TaskResponse](data=TaskResponse.from_view(tasks.get_task(principal, task_id)))


@router.put("/tasks/{task_id}", response_model=ApiResponse[TaskResponse])
def update_task(
    task_id: int,
    body: TaskUpdate,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskResponse]:
    """Apply only the fields present in the body. assignedTo: null unassigns."""
    changes = {}
    for key, value in body.model_dump(mode="json", exclude_unset=True).items():
        if value is None and key not in _NULLABLE_UPDATE_FIELDS:
            continue
        changes[key] = value
    view = tasks.update_task(principal, task_id, changes)
    return ApiResponse[TaskResponse](message="Task updated successfully", data=TaskResponse.from_view(view))


@router.delete("/tasks/{task_id}", response_model=ApiResponse[None])
def delete_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[None]:
    tasks.delete_task(principal, task_id)
    return ApiResponse[None](message="Task deleted successfully")


@router.patch("/tasks/{task_id}/status", response_model=ApiResponse[TaskResponse])
def update_status(
    task_id: int,
    body: StatusUpdate,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskResponse]:
    view = tasks.set_status(principal, task_id, body.status.value)
    return ApiResponse[TaskResponse](message="Task status updated successfully", data=TaskResponse.from_view(view))


@router.patch("/tasks/{task_id}/priority", response_model=ApiResponse[TaskResponse])
def update_priority(
    task_id: int,
    body: PriorityUpdate,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
) -> ApiResponse[TaskResponse]:
    view = tasks.set_priority(principal, task_id, body.priority.value)
    return ApiResponse[TaskResponse](
        message="Task priority updated successfully", data=TaskResponse.from_view(view)
    )
