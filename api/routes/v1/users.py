"""
api/routes/v1/users.py -- User roster endpoints.

Routes:
  GET    /api/v1/users             -- paginated, searchable list (requires auth)
  POST   /api/v1/users             -- create user with explicit role (admin only, 201)
  GET    /api/v1/users/{id}        -- single user (requires auth)
  PUT    /api/v1/users/{id}        -- partial profile update (admin only)
  PATCH  /api/v1/users/{id}/role   -- change role (admin only)
  DELETE /api/v1/users/{id}        -- delete user (admin only)

Every rule (who may write, self-protection, last-admin protection) lives in
auth.users.UserService. require_admin on the write routes only makes the
rejection happen before the body is looked at.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.models import (
    ApiResponse,
    PaginatedData,
    Pagination,
    RoleUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from auth.dependencies import get_current_principal, get_user_service, require_admin
from auth.models import Principal
from auth.users import UserService

# Auth policy:
# - GET    /api/v1/users, /users/{id}: requires auth (get_current_principal)
# - POST   /api/v1/users:              requires admin (require_admin)
# - PUT    /api/v1/users/{id}:         requires admin (require_admin)
# - PATCH  /api/v1/users/{id}/role:    requires admin (require_admin)
# - DELETE /api/v1/users/{id}:         requires admin (require_admin)
router = APIRouter()


@router.get("/users", response_model=ApiResponse[PaginatedData[UserResponse]])
def list_users(
    search: Optional[str] = Query(default=None, max_length=100),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[PaginatedData[UserResponse]]:
    """List users. Out-of-range page/limit values are clamped, not rejected."""
    result = users.list_users(principal, search=search, page=page, limit=limit)
    return ApiResponse[PaginatedData[UserResponse]](
        data=PaginatedData[UserResponse](
            items=[UserResponse.from_user(u) for u in result.items],
            pagination=Pagination.from_page(result),
        )
    )


@router.post("/users", response_model=ApiResponse[UserResponse], status_code=201)
def create_user(
    body: UserCreate,
    principal: Principal = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    user = users.create_user(
        principal,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role.value,
        is_active=body.is_active,
    )
    return ApiResponse[UserResponse](message="User created successfully", data=UserResponse.from_user(user))


@router.get("/users/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    return ApiResponse[UserResponse](data=UserResponse.from_user(users.get_user(principal, user_id)))


@router.put("/users/{user_id}", response_model=ApiResponse[UserResponse])
def update_user(
    user_id: int,
    body: UserUpdate,
    principal: Principal = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    """Apply only the fields present in the body. role and password are not accepted here."""
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    user = users.update_user(principal, user_id, changes)
    return ApiResponse[UserResponse](message="User updated successfully", data=UserResponse.from_user(user))


@router.patch("/users/{user_id}/role", response_model=ApiResponse[UserResponse])
def set_role(
    user_id: int,
    body: RoleUpdate,
    principal: Principal = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[UserResponse]:
    user = users.set_role(principal, user_id, body.role.value)
    return ApiResponse[UserResponse](message="User role updated successfully", data=UserResponse.from_user(user))


@router.delete("/users/{user_id}", response_model=ApiResponse[None])
def delete_user(
    user_id: int,
    principal: Principal = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[None]:
    users.delete_user(principal, user_id)
    return ApiResponse[None](message="User deleted successfully")
