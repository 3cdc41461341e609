"""
Pydantic schemas for role management.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.users.schemas import UserPublic


class RoleCreate(BaseModel):
    """Schema for creating a new role."""
    name: str = Field(..., min_length=1, max_length=100, description="Role name")
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    grants_version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleDropdownItem(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class RoleListResponse(BaseModel):
    """A page of roles."""
    items: List[RoleResponse]
    total: int
    page: int
    per_page: int


class RoleUsersResponse(BaseModel):
    role: RoleDropdownItem
    users: List[UserPublic]
    total: int
    page: int
    per_page: int
