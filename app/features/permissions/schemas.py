"""
Pydantic schemas for permission management.

Request and response models for the catalog, resolved permissions and
permission profiles.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Resolved Permission Views
# ============================================================================

class ModuleAction(BaseModel):
    """One resolved (module, action) pair; the unit of a principal's ability list."""
    module: str
    action: str

    model_config = ConfigDict(frozen=True)


class ModuleActions(BaseModel):
    """All actions a role holds on one module, as a comma-joined string."""
    module: str
    action: str = ""


# ============================================================================
# Catalog Schemas
# ============================================================================

class ResourceResponse(BaseModel):
    """Schema for a protected module."""
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    module_group: str

    model_config = ConfigDict(from_attributes=True)


class ActionResponse(BaseModel):
    """Schema for an action code."""
    id: int
    code: str
    display_name: str
    description: Optional[str] = None
    requires_ownership: bool

    model_config = ConfigDict(from_attributes=True)


class ModuleInfo(BaseModel):
    """Module entry for module pickers."""
    key: str
    name: str
    group: str


# ============================================================================
# Permission Profile Schemas
# ============================================================================

def _validate_permission_map(v: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if v is None:
        return v
    if any(not module.strip() for module in v):
        raise ValueError("Module names must not be blank")
    return v


class PermissionProfileCreate(BaseModel):
    """Schema for creating a role together with its permission matrix."""
    name: str = Field(..., min_length=1, max_length=100, description="Role name")
    description: Optional[str] = Field(None, max_length=1000)
    permissions: Dict[str, str] = Field(
        default_factory=dict,
        description="Module name to comma separated action codes",
        examples=[{"employees": "C,V,E", "vendor": "VO"}],
    )

    @field_validator("permissions")
    @classmethod
    def permissions_have_module_names(cls, v):
        return _validate_permission_map(v)


class PermissionProfileUpdate(BaseModel):
    """Schema for renaming a profile and/or replacing its permission matrix."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    permissions: Optional[Dict[str, str]] = None
    expected_version: Optional[int] = Field(
        None, ge=0, description="grants_version the caller last read; rejects concurrent edits"
    )

    @field_validator("permissions")
    @classmethod
    def permissions_have_module_names(cls, v):
        return _validate_permission_map(v)


class UserLevelRef(BaseModel):
    id: int
    name: str


class PermissionProfileResponse(BaseModel):
    """Schema for a role with its compatibility-format permission map."""
    id: int
    name: str
    permissions: Dict[str, str] = {}
    grants_version: int
    number_of_users: Optional[int] = None
    user_level: UserLevelRef


class SkippedEntryResponse(BaseModel):
    module: str
    action: Optional[str] = None
    reason: str


class PermissionProfileWriteResponse(PermissionProfileResponse):
    """Profile after a write, with the entries that could not be applied."""
    skipped: List[SkippedEntryResponse] = []

