"""
Permission catalog and grant models.

This module implements the normalized permission tables:
- Resources: the protected modules (employees, vendor, assets_managments, ...)
- Actions: the canonical capability codes (C, V, VO, E, EO, D, DO)
- Grants: one (role, resource, action) fact per row
- Audit log of grant matrix changes
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Text, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ulid import ULID

from app.core.database.base import Base, TimestampMixin, AuditMixin


def generate_ulid() -> str:
    """Return a lexicographically sortable ULID string."""
    return str(ULID())


# ============================================================================
# Catalog
# ============================================================================

class PermissionResource(Base, TimestampMixin):
    """
    A protected business module.
    
    Seeded; effectively read-only at runtime.
    Examples: employees, vendor, assets_managments, work_order
    """
    __tablename__ = "permissions_resources"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    module_group: Mapped[str] = mapped_column(String(50), nullable=False, default="Other")
    
    def __repr__(self) -> str:
        return f"<PermissionResource(id={self.id}, name={self.name!r}, group={self.module_group!r})>"


class PermissionAction(Base, TimestampMixin):
    """
    A canonical capability code.
    
    C=create, V=view all, VO=view own, E=edit all, EO=edit own,
    D=delete all, DO=delete own. The "own" codes require ownership scoping.
    """
    __tablename__ = "permissions_actions"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_ownership: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    def __repr__(self) -> str:
        return f"<PermissionAction(id={self.id}, code={self.code!r})>"


# ============================================================================
# Grants
# ============================================================================

class PermissionGrant(Base, TimestampMixin, AuditMixin):
    """
    One (role, resource, action) authorization fact.
    
    A role's grants are the sole authority for its permissions. There is no
    uniqueness constraint on (role, resource, action); readers deduplicate.
    """
    __tablename__ = "permissions_roles"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    resource_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("permissions_resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    action_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("permissions_actions.id", ondelete="CASCADE"),
        nullable=False
    )
    
    # Carried for future attribute rules; never interpreted by resolution
    conditions: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    
    # Loaded only where a query asks for them with selectinload
    resource: Mapped["PermissionResource"] = relationship()
    action: Mapped["PermissionAction"] = relationship()
    
    def __repr__(self) -> str:
        return (
            f"<PermissionGrant(id={self.id}, role_id={self.role_id}, "
            f"resource_id={self.resource_id}, action_id={self.action_id})>"
        )


# ============================================================================
# Audit
# ============================================================================

class AuditLog(Base, TimestampMixin):
    """
    Audit log for permission matrix changes.
    
    Tracks who changed which role's grants, and the resulting diff.
    """
    __tablename__ = "audit_logs"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
