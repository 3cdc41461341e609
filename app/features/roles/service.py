"""
Role lifecycle and user role assignment.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, NotFoundError, RoleNotFound
from app.features.permissions.dependencies import create_audit_log
from app.features.permissions.resolver import normalize_role_id
from app.features.permissions.store import GrantStore
from app.features.roles.models import Role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class RoleService:
    """
    Roles and the users that hold them.

    Grants are never written here except to clear them when a role is
    deleted; matrix edits go through MatrixEditor.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------------

    async def get(self, role_id: Any) -> Optional[Role]:
        normalized = normalize_role_id(role_id)
        if normalized is None:
            return None
        return await self.db.get(Role, normalized)

    async def get_or_404(self, role_id: Any) -> Role:
        role = await self.get(role_id)
        if role is None:
            raise RoleNotFound(role_id)
        return role

    async def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Role.id).where(Role.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if (await self.db.execute(stmt)).first() is not None:
            raise BadRequestError("Role with this name already exists")

    async def create(
        self,
        name: str,
        acting_user_id: Optional[int],
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Role:
        """Add a role to the current transaction (flushed, not committed)."""
        await self._ensure_name_free(name)
        role = Role(
            name=name,
            description=description,
            is_active=is_active,
            created_by=acting_user_id,
            updated_by=acting_user_id,
        )
        self.db.add(role)
        await self.db.flush()
        log.info("Created role %s (%r)", role.id, role.name)
        return role

    async def list_roles(
        self,
        page: int = 1,
        per_page: int = 10,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[Role], int]:
        """A page of roles, newest first, and the total matching count."""
        stmt = select(Role)
        if search:
            stmt = stmt.where(Role.name.ilike(f"%{search}%"))
        if is_active is not None:
            stmt = stmt.where(Role.is_active == is_active)

        total = (await self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        )).scalar_one()

        result = await self.db.execute(
            stmt.order_by(Role.id.desc()).offset((page - 1) * per_page).limit(per_page)
        )
        return list(result.scalars().all()), total

    async def dropdown(self, active_only: bool = True) -> List[Role]:
        stmt = select(Role)
        if active_only:
            stmt = stmt.where(Role.is_active == True).order_by(Role.name)
        else:
            stmt = stmt.order_by(Role.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update(self, role_id: Any, acting_user_id: Optional[int], **changes) -> Role:
        """Apply the given field changes; renaming checks uniqueness."""
        role = await self.get_or_404(role_id)
        if changes.get("name") is not None and changes["name"] != role.name:
            await self._ensure_name_free(changes["name"], exclude_id=role.id)
        for key, value in changes.items():
            if value is not None:
                setattr(role, key, value)
        role.updated_by = acting_user_id
        await self.db.flush()
        return role

    async def delete(self, role_id: Any, acting_user_id: Optional[int]) -> None:
        """
        Delete a role that nobody holds.

        Raises BadRequestError while users are still assigned.
        """
        role = await self.get_or_404(role_id)
        assigned = await self.count_users(role.id)
        if assigned > 0:
            raise BadRequestError(
                f"Cannot delete role. {assigned} users are assigned to this role."
            )
        await self._delete_role(role, acting_user_id, detached=0)

    async def delete_profile(self, role_id: Any, acting_user_id: Optional[int]) -> int:
        """
        Delete a permission profile whether or not users hold it.

        Users of the role are left without a role. Returns how many users
        were detached.
        """
        role = await self.get_or_404(role_id)
        result = await self.db.execute(
            update(User).where(User.role_id == role.id).values(role_id=None)
        )
        detached = result.rowcount
        await self._delete_role(role, acting_user_id, detached=detached)
        return detached

    async def _delete_role(self, role: Role, acting_user_id: Optional[int], detached: int) -> None:
        role_id, name = role.id, role.name
        removed = await GrantStore(self.db).delete_all_for_role(role_id)
        await self.db.delete(role)
        await create_audit_log(
            self.db,
            user_id=acting_user_id,
            action="delete",
            resource_type="role",
            resource_id=role_id,
            details={"name": name, "grants_removed": removed, "users_detached": detached},
        )
        await self.db.commit()
        log.info("Deleted role %s (%r), %d grants removed", role_id, name, removed)

    # ------------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------------

    async def count_users(self, role_id: int) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(User).where(User.role_id == role_id)
        )
        return result.scalar_one()

    async def user_counts(self, role_ids: Iterable[int]) -> Dict[int, int]:
        """{role_id: number of users} for every given role, zeros included."""
        role_ids = list(role_ids)
        counts = {role_id: 0 for role_id in role_ids}
        if not role_ids:
            return counts
        result = await self.db.execute(
            select(User.role_id, func.count())
            .where(User.role_id.in_(role_ids))
            .group_by(User.role_id)
        )
        counts.update({role_id: count for role_id, count in result.all()})
        return counts

    async def users_of_role(
        self, role_id: Any, page: int = 1, per_page: int = 10
    ) -> Tuple[Role, List[User], int]:
        role = await self.get_or_404(role_id)
        total = await self.count_users(role.id)
        result = await self.db.execute(
            select(User)
            .where(User.role_id == role.id)
            .order_by(User.name)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return role, list(result.scalars().all()), total

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def assign_role_to_user(
        self, user_id: int, role_id: Any, acting_user_id: Optional[int]
    ) -> User:
        user = await self.get_user(user_id)
        role = await self.get_or_404(role_id)
        user.role_id = role.id
        user.role = role
        await create_audit_log(
            self.db,
            user_id=acting_user_id,
            action="assign_role",
            resource_type="user",
            resource_id=user.id,
            details={"role_id": role.id},
        )
        await self.db.commit()
        return user

    async def remove_role_from_user(self, user_id: int, acting_user_id: Optional[int]) -> User:
        user = await self.get_user(user_id)
        previous = user.role_id
        user.role_id = None
        user.role = None
        await create_audit_log(
            self.db,
            user_id=acting_user_id,
            action="remove_role",
            resource_type="user",
            resource_id=user.id,
            details={"role_id": previous},
        )
        await self.db.commit()
        return user

    async def bulk_assign(
        self, user_ids: Sequence[int], role_id: Any, acting_user_id: Optional[int]
    ) -> Tuple[Role, int]:
        """
        Give every listed user the role.

        All users must exist; otherwise nothing is changed.
        """
        role = await self.get_or_404(role_id)
        wanted = sorted(set(user_ids))
        found = set((await self.db.execute(
            select(User.id).where(User.id.in_(wanted))
        )).scalars().all())
        if found != set(wanted):
            raise BadRequestError("Some users not found")

        await self.db.execute(
            update(User).where(User.id.in_(wanted)).values(role_id=role.id)
        )
        await create_audit_log(
            self.db,
            user_id=acting_user_id,
            action="bulk_assign_role",
            resource_type="role",
            resource_id=role.id,
            details={"user_ids": wanted},
        )
        await self.db.commit()
        return role, len(wanted)
