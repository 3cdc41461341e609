"""
Role management API routes, gated on the `settings` module.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.dependencies import require_permission
from app.features.roles.schemas import (
    RoleCreate,
    RoleDropdownItem,
    RoleListResponse,
    RoleResponse,
    RoleUpdate,
    RoleUsersResponse,
)
from app.features.roles.service import RoleService
from app.features.users.schemas import Principal, UserPublic


router = APIRouter()


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "C"))
):
    """Create a new role. Role names are unique."""
    db_role = await RoleService(db).create(
        role.name,
        acting_user_id=principal.user_id,
        description=role.description,
        is_active=role.is_active,
    )
    await db.commit()
    await db.refresh(db_role)
    return db_role


@router.get("", response_model=RoleListResponse)
async def list_roles(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """List roles, newest first, with optional name search and active filter."""
    roles, total = await RoleService(db).list_roles(page, per_page, search, is_active)
    return RoleListResponse(
        items=[RoleResponse.model_validate(role) for role in roles],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/dropdown", response_model=List[RoleDropdownItem])
async def roles_dropdown(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Active roles by name, for pickers."""
    return await RoleService(db).dropdown()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    return await RoleService(db).get_or_404(role_id)


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "E"))
):
    """Update a role's name, description or active flag."""
    role = await RoleService(db).update(
        role_id, principal.user_id, **role_update.model_dump(exclude_unset=True)
    )
    await db.commit()
    await db.refresh(role)
    return role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "D"))
):
    """Delete a role. Refused (400) while any user holds it."""
    await RoleService(db).delete(role_id, principal.user_id)
    return None


@router.get("/{role_id}/users", response_model=RoleUsersResponse)
async def list_role_users(
    role_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Users holding a role."""
    role, users, total = await RoleService(db).users_of_role(role_id, page, per_page)
    return RoleUsersResponse(
        role=RoleDropdownItem.model_validate(role),
        users=[UserPublic.model_validate(user) for user in users],
        total=total,
        page=page,
        per_page=per_page,
    )
