"""
Pydantic schemas for user-related requests and responses.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from app.features.permissions.schemas import ModuleAction


class Principal(BaseModel):
    """
    The authenticated caller of the current request.

    `ability` is resolved from the grant store for this request only.
    """
    user_id: int
    email: str
    role_id: Optional[int] = None
    ability: List[ModuleAction] = []


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: int
    name: str
    email: str
    
    model_config = {"from_attributes": True}


class RoleRef(BaseModel):
    id: int
    name: str


class UserRoleResponse(BaseModel):
    user: UserPublic
    role: Optional[RoleRef] = None


class AssignRole(BaseModel):
    """Schema for assigning a role to a user."""
    role_id: int = Field(..., gt=0, description="Role ID to assign to user")


class BulkAssignRole(BaseModel):
    """Schema for assigning one role to many users."""
    user_ids: List[int] = Field(..., min_length=1, description="User IDs")
    role_id: int = Field(..., gt=0, description="Role ID to assign to all users")


class BulkAssignRoleResponse(BaseModel):
    assigned_count: int
    role: RoleRef
