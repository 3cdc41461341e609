"""
Permission matrix API routes.

Read and replace the whole grant matrix of a role, list the catalog, and
inspect consolidated settings permissions. All routes are gated on the
`settings` module.
"""
from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permission_matrix.schemas import (
    ActionListResponse,
    ConsolidatedPermissionsResponse,
    ModuleListResponse,
    PermissionMatrixResponse,
    PermissionMatrixUpdate,
    PermissionMatrixUpdateResponse,
    RoleRef,
    UserModulePermissionResponse,
)
from app.features.permission_matrix.service import MatrixEditor
from app.features.permissions.dependencies import require_permission
from app.features.permissions.resolver import split_actions
from app.features.permissions.schemas import ActionResponse, ResourceResponse, SkippedEntryResponse
from app.features.users.schemas import Principal
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("/modulelist", response_model=ModuleListResponse)
async def list_modules(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """All permission resources, ordered by module group and name."""
    view = await MatrixEditor(db).get_catalog_view()
    return ModuleListResponse(
        modules=[ResourceResponse.model_validate(resource) for resource in view.resources]
    )


@router.get("/actionslist", response_model=ActionListResponse)
async def list_actions(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """All action codes in catalog order."""
    view = await MatrixEditor(db).get_catalog_view()
    return ActionListResponse(
        actions=[ActionResponse.model_validate(action) for action in view.actions]
    )


@router.get("/consolidated/{role_id}", response_model=ConsolidatedPermissionsResponse)
async def get_consolidated_permissions(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Settings permissions of a role folded into the consolidated keys."""
    editor = MatrixEditor(db)
    role = await editor.get_role(role_id)
    return ConsolidatedPermissionsResponse(
        role_id=role.id,
        permissions=await editor.consolidate(role.id),
        mapping=editor.consolidation_mapping(),
    )


@router.get("/permission-check/{module}", response_model=UserModulePermissionResponse)
async def check_my_permission(
    module: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Permissions the current user's role holds on one module."""
    result = await MatrixEditor(db).check_user_permission(principal.user_id, module)
    return UserModulePermissionResponse(
        user_id=principal.user_id,
        module=module,
        permissions=result.action,
        formatted_permissions=split_actions(result.action),
    )


@router.get("/{role_id}", response_model=PermissionMatrixResponse)
async def get_permission_matrix(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "V"))
):
    """Complete permission matrix for a role."""
    matrix = await MatrixEditor(db).get_permission_matrix(role_id)
    return PermissionMatrixResponse(
        role=RoleRef(id=matrix.role.id, name=matrix.role.name),
        permissions=matrix.permissions,
        grants_version=matrix.grants_version,
    )


@router.put("/{role_id}", response_model=PermissionMatrixUpdateResponse)
async def update_permission_matrix(
    role_id: int,
    update: PermissionMatrixUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("settings", "E"))
):
    """
    Replace the permission matrix for a role.

    Entries with unknown modules or actions are skipped and listed in the
    response. Send `expected_version` to reject the write if someone else
    changed the matrix first (409).
    """
    result = await MatrixEditor(db).replace_role_permissions(
        role_id,
        update.permissions,
        acting_user_id=principal.user_id,
        expected_version=update.expected_version,
    )
    return PermissionMatrixUpdateResponse(
        role=RoleRef(id=result.role_id, name=result.role_name),
        permissions=result.permissions,
        grants_version=result.grants_version,
        added=result.added,
        removed=result.removed,
        skipped=[SkippedEntryResponse(**asdict(entry)) for entry in result.skipped],
    )
