"""
Grant store: reads and writes of the (role, resource, action) grant table.

The store never commits. Callers that change grants own the transaction.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple
from sqlalchemy import delete, select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.models import PermissionGrant, PermissionResource
from app.utils import get_logger


log = get_logger(__name__)

# (resource_id, action_id)
GrantPair = Tuple[int, int]


@dataclass
class GrantDiff:
    """Pairs added to and removed from a role by a replace."""
    added: List[GrantPair] = field(default_factory=list)
    removed: List[GrantPair] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class GrantStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def grants_for_role(self, role_id: int) -> List[PermissionGrant]:
        result = await self.db.execute(
            select(PermissionGrant)
            .where(PermissionGrant.role_id == role_id)
            .order_by(PermissionGrant.id)
        )
        return list(result.scalars().all())

    async def grants_for_role_and_resource(self, role_id: int, resource_name: str) -> List[PermissionGrant]:
        result = await self.db.execute(
            select(PermissionGrant)
            .options(selectinload(PermissionGrant.resource), selectinload(PermissionGrant.action))
            .join(PermissionResource, PermissionResource.id == PermissionGrant.resource_id)
            .where(
                PermissionGrant.role_id == role_id,
                PermissionResource.name == resource_name,
            )
            .order_by(PermissionGrant.id)
        )
        return list(result.scalars().all())

    async def delete_all_for_role(self, role_id: int) -> int:
        result = await self.db.execute(
            delete(PermissionGrant).where(PermissionGrant.role_id == role_id)
        )
        log.debug("Deleted %d grants for role %s", result.rowcount, role_id)
        return result.rowcount

    async def replace_all(
        self,
        role_id: int,
        pairs: Iterable[GrantPair],
        acting_user_id: Optional[int],
    ) -> GrantDiff:
        """
        Make the role's grant set equal to `pairs`.

        Only the difference is written: rows for pairs no longer wanted are
        deleted, surplus duplicate rows are deleted, and missing pairs are
        inserted with audit fields set to `acting_user_id`.
        """
        wanted: Set[GrantPair] = set(pairs)
        seen: Set[GrantPair] = set()
        stale_ids: List[int] = []
        diff = GrantDiff()

        for grant in await self.grants_for_role(role_id):
            pair = (grant.resource_id, grant.action_id)
            if pair not in wanted:
                stale_ids.append(grant.id)
                if pair not in seen:
                    diff.removed.append(pair)
            elif pair in seen:
                # duplicate row of a grant that stays
                stale_ids.append(grant.id)
            seen.add(pair)

        if stale_ids:
            await self.db.execute(
                delete(PermissionGrant).where(PermissionGrant.id.in_(stale_ids))
            )

        for resource_id, action_id in sorted(wanted - seen):
            self.db.add(PermissionGrant(
                role_id=role_id,
                resource_id=resource_id,
                action_id=action_id,
                created_by=acting_user_id,
                updated_by=acting_user_id,
            ))
            diff.added.append((resource_id, action_id))

        await self.db.flush()
        diff.removed.sort()
        return diff
