"""
Pydantic schemas for the permission matrix API.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from app.features.permissions.schemas import (
    ActionResponse,
    ModuleAction,
    ResourceResponse,
    SkippedEntryResponse,
)


class RoleRef(BaseModel):
    id: int
    name: str


class PermissionMatrixResponse(BaseModel):
    """A role's full permission matrix."""
    role: RoleRef
    permissions: Dict[str, str] = {}
    grants_version: int


class PermissionMatrixUpdate(BaseModel):
    """Replacement matrix for a role."""
    permissions: Dict[str, str] = Field(
        ...,
        description="Module name to comma separated action codes; '' removes the module",
        examples=[{"employees": "C,V,E", "vendor": "VO", "client": ""}],
    )
    expected_version: Optional[int] = Field(
        None, ge=0, description="grants_version the caller last read"
    )

    @field_validator("permissions")
    @classmethod
    def permissions_have_module_names(cls, v):
        if any(not module.strip() for module in v):
            raise ValueError("Module names must not be blank")
        return v


class PermissionMatrixUpdateResponse(PermissionMatrixResponse):
    added: List[ModuleAction] = []
    removed: List[ModuleAction] = []
    skipped: List[SkippedEntryResponse] = []


class ConsolidatedPermissionsResponse(BaseModel):
    role_id: int
    permissions: Dict[str, str]
    mapping: Dict[str, List[str]]


class UserModulePermissionResponse(BaseModel):
    """What the current user's role may do on one module."""
    user_id: int
    module: str
    permissions: str
    formatted_permissions: List[str]


class ModuleListResponse(BaseModel):
    modules: List[ResourceResponse]


class ActionListResponse(BaseModel):
    actions: List[ActionResponse]
