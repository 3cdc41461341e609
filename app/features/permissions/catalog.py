"""
Read-only lookups over the seeded resource and action catalog.
"""
from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.config import DEFAULT_ACTIONS, DEFAULT_RESOURCES, display_name_for
from app.features.permissions.models import PermissionAction, PermissionResource
from app.utils import get_logger


log = get_logger(__name__)


class PermissionCatalog:
    """Resource-by-name and action-by-code lookups used by every write path."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_resource(self, name: str) -> Optional[PermissionResource]:
        result = await self.db.execute(
            select(PermissionResource).where(PermissionResource.name == name)
        )
        return result.scalars().first()

    async def get_action(self, code: str) -> Optional[PermissionAction]:
        result = await self.db.execute(
            select(PermissionAction).where(PermissionAction.code == code)
        )
        return result.scalars().first()

    async def resources(self) -> List[PermissionResource]:
        """All resources ordered by module group, then name."""
        result = await self.db.execute(
            select(PermissionResource).order_by(
                PermissionResource.module_group, PermissionResource.name
            )
        )
        return list(result.scalars().all())

    async def actions(self) -> List[PermissionAction]:
        """All actions in catalog (id) order."""
        result = await self.db.execute(select(PermissionAction).order_by(PermissionAction.id))
        return list(result.scalars().all())

    async def resource_map(self) -> Dict[str, PermissionResource]:
        return {resource.name: resource for resource in await self.resources()}

    async def action_map(self) -> Dict[str, PermissionAction]:
        return {action.code: action for action in await self.actions()}


async def seed_catalog(db: AsyncSession) -> tuple[int, int]:
    """
    Insert missing default actions and resources.

    Idempotent: existing rows are left untouched. Flushes but does not
    commit. Returns (actions_added, resources_added).
    """
    catalog = PermissionCatalog(db)
    existing_actions = await catalog.action_map()
    existing_resources = await catalog.resource_map()

    actions_added = 0
    for code, display_name, description, requires_ownership in DEFAULT_ACTIONS:
        if code in existing_actions:
            continue
        db.add(PermissionAction(
            code=code,
            display_name=display_name,
            description=description,
            requires_ownership=requires_ownership,
        ))
        # flush per row so ids follow the canonical order
        await db.flush()
        actions_added += 1

    resources_added = 0
    for group, names in DEFAULT_RESOURCES.items():
        for name in names:
            if name in existing_resources:
                continue
            db.add(PermissionResource(
                name=name,
                display_name=display_name_for(name),
                module_group=group,
            ))
            resources_added += 1
    await db.flush()

    if actions_added or resources_added:
        log.info("Seeded %d actions and %d resources", actions_added, resources_added)
    return actions_added, resources_added
