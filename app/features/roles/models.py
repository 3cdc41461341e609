"""
Role model.

A role's identity (name, active flag) lives here; what it may do lives in
the grant table owned by the permissions feature.
"""
from sqlalchemy import String, Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, AuditMixin


class Role(Base, TimestampMixin, AuditMixin):
    """
    Role referenced by users and by permission grants.

    Examples: Super Admin, Sales Manager, Technician
    """
    __tablename__ = "roles"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Bumped on every matrix write; used to detect lost updates
    grants_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, active={self.is_active})>"
