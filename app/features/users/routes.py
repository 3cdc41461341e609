"""
User feature routes: the current principal and role assignment.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.dependencies import require_permission
from app.features.roles.service import RoleService
from app.features.users.dependencies import get_current_principal
from app.features.users.schemas import (
    AssignRole,
    BulkAssignRole,
    BulkAssignRoleResponse,
    Principal,
    RoleRef,
    UserPublic,
    UserRoleResponse,
)


router = APIRouter(tags=["users"])


def _user_role_response(user) -> UserRoleResponse:
    return UserRoleResponse(
        user=UserPublic.model_validate(user),
        role=RoleRef(id=user.role.id, name=user.role.name) if user.role is not None else None,
    )


@router.get("/me", response_model=Principal)
async def get_current_principal_profile(
    principal: Annotated[Principal, Depends(get_current_principal)]
):
    """Current principal with the abilities resolved for this request."""
    return principal


@router.put("/bulk-assign-role", response_model=BulkAssignRoleResponse)
async def bulk_assign_role(
    assignment: BulkAssignRole,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permission("user", "E"))]
):
    """Assign one role to many users. Fails without changes if any user is missing."""
    role, count = await RoleService(db).bulk_assign(
        assignment.user_ids, assignment.role_id, principal.user_id
    )
    return BulkAssignRoleResponse(assigned_count=count, role=RoleRef(id=role.id, name=role.name))


@router.get("/{user_id}/role", response_model=UserRoleResponse)
async def get_user_role(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permission("user", "V"))]
):
    user = await RoleService(db).get_user(user_id)
    return _user_role_response(user)


@router.post("/{user_id}/assign-role", response_model=UserRoleResponse)
async def assign_role(
    user_id: int,
    assignment: AssignRole,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permission("user", "E"))]
):
    """Give a user a role, replacing any role they held."""
    user = await RoleService(db).assign_role_to_user(user_id, assignment.role_id, principal.user_id)
    return _user_role_response(user)


@router.delete("/{user_id}/remove-role", response_model=UserRoleResponse)
async def remove_role(
    user_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permission("user", "E"))]
):
    user = await RoleService(db).remove_role_from_user(user_id, principal.user_id)
    return _user_role_response(user)
