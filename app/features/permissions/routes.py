"""
Permission profile API routes.

A permission profile is a role together with its {module: "C,V,..."} map.
Provides endpoints for managing profiles, querying resolved permissions of a
role, and listing the protected modules.
"""
from dataclasses import asdict
from typing import Dict, List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permission_matrix.service import MatrixEditor, MatrixUpdateResult
from app.features.permissions.dependencies import require_permission
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    ModuleAction,
    ModuleActions,
    ModuleInfo,
    PermissionProfileCreate,
    PermissionProfileResponse,
    PermissionProfileUpdate,
    PermissionProfileWriteResponse,
    SkippedEntryResponse,
    UserLevelRef,
)
from app.features.roles.schemas import RoleDropdownItem
from app.features.roles.service import RoleService
from app.features.users.schemas import Principal
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _write_response(result: MatrixUpdateResult) -> PermissionProfileWriteResponse:
    return PermissionProfileWriteResponse(
        id=result.role_id,
        name=result.role_name,
        permissions=result.permissions,
        grants_version=result.grants_version,
        user_level=UserLevelRef(id=result.role_id, name=result.role_name),
        skipped=[SkippedEntryResponse(**asdict(entry)) for entry in result.skipped],
    )


# ============================================================================
# Module Routes
# ============================================================================

@router.get("/modules", response_model=List[ModuleInfo])
async def list_available_modules(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """All protected modules with display names and groups."""
    return await MatrixEditor(db).available_modules()


@router.get("/modules/grouped", response_model=Dict[str, List[ModuleInfo]])
async def list_modules_grouped(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Protected modules keyed by module group."""
    return await MatrixEditor(db).modules_grouped()


# ============================================================================
# Resolved Permission Routes
# ============================================================================

@router.get("/user-levels-dropdown", response_model=List[RoleDropdownItem])
async def user_levels_dropdown(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "V"))
):
    """Every role, active or not, by id."""
    return await RoleService(db).dropdown(active_only=False)


@router.get("/by-role/{role}", response_model=List[ModuleAction])
async def permissions_by_role(
    role: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "V"))
):
    """
    Flat (module, action) list for a role.

    An id that cannot name a role yields an empty list rather than an error.
    """
    return await PermissionResolver(db).resolve(role)


@router.get("/role/{role}/module/{module}", response_model=ModuleActions)
async def module_actions_by_role(
    role: str,
    module: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "V"))
):
    """Comma-joined actions a role holds on one module ('' when none)."""
    return await PermissionResolver(db).resolve_module(role, module)


# ============================================================================
# Permission Profile Routes
# ============================================================================

@router.post("", response_model=PermissionProfileWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(
    profile: PermissionProfileCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "C"))
):
    """Create a role and its permission matrix in one transaction."""
    role = await RoleService(db).create(
        profile.name, acting_user_id=principal.user_id, description=profile.description
    )
    result = await MatrixEditor(db).replace_role_permissions(
        role.id, profile.permissions, acting_user_id=principal.user_id
    )
    return _write_response(result)


@router.get("", response_model=List[PermissionProfileResponse])
async def list_profiles(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "V"))
):
    """Every role with its permission map and number of users."""
    service = RoleService(db)
    resolver = PermissionResolver(db)
    roles = await service.dropdown(active_only=False)
    counts = await service.user_counts(role.id for role in roles)

    profiles = []
    for role in roles:
        profiles.append(PermissionProfileResponse(
            id=role.id,
            name=role.name,
            permissions=await resolver.resolve_compatibility(role.id),
            grants_version=role.grants_version,
            number_of_users=counts[role.id],
            user_level=UserLevelRef(id=role.id, name=role.name),
        ))
    return profiles


@router.get("/{profile_id}", response_model=PermissionProfileResponse)
async def get_profile(
    profile_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "V"))
):
    role = await RoleService(db).get_or_404(profile_id)
    return PermissionProfileResponse(
        id=role.id,
        name=role.name,
        permissions=await PermissionResolver(db).resolve_compatibility(role.id),
        grants_version=role.grants_version,
        user_level=UserLevelRef(id=role.id, name=role.name),
    )


@router.patch("/{profile_id}", response_model=PermissionProfileWriteResponse)
async def update_profile(
    profile_id: int,
    profile: PermissionProfileUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "E"))
):
    """
    Rename a profile and/or replace its permission matrix.

    Omitting `permissions` keeps the current matrix; sending it replaces the
    matrix entirely. Rename and matrix replacement commit together.
    """
    service = RoleService(db)
    role = await service.get_or_404(profile_id)
    if profile.name is not None:
        role = await service.update(role.id, principal.user_id, name=profile.name)

    if profile.permissions is None:
        await db.commit()
        return PermissionProfileWriteResponse(
            id=role.id,
            name=role.name,
            permissions=await PermissionResolver(db).resolve_compatibility(role.id),
            grants_version=role.grants_version,
            user_level=UserLevelRef(id=role.id, name=role.name),
        )

    result = await MatrixEditor(db).replace_role_permissions(
        role.id,
        profile.permissions,
        acting_user_id=principal.user_id,
        expected_version=profile.expected_version,
    )
    return _write_response(result)


@router.delete("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(
    profile_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("user_level", "D"))
):
    """
    Delete a profile and its grants.

    Unlike DELETE /roles/{id}, users holding the role do not block this;
    they are left without a role.
    """
    detached = await RoleService(db).delete_profile(profile_id, principal.user_id)
    if detached:
        log.warning("Deleted profile %s held by %d users", profile_id, detached)
    return None
