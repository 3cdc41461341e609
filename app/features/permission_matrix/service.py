"""
Role permission matrix editing.

The matrix for a role is a {module: "C,V,EO"} map. Writes replace the whole
grant set of the role in one transaction; reads produce the same map shape
plus consolidated views over groups of settings modules.
"""
import asyncio
import weakref
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.errors import GrantConflict, GrantVersionRequired, NotFoundError, RoleNotFound
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.config import load_consolidation_map
from app.features.permissions.dependencies import create_audit_log
from app.features.permissions.models import PermissionAction, PermissionResource
from app.features.permissions.resolver import PermissionResolver, normalize_role_id, split_actions
from app.features.permissions.schemas import ModuleAction, ModuleActions, ModuleInfo
from app.features.permissions.store import GrantPair, GrantStore
from app.features.roles.models import Role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

# One lock per role id while some coroutine is using it
_role_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(role_id: int) -> asyncio.Lock:
    lock = _role_locks.get(role_id)
    if lock is None:
        lock = asyncio.Lock()
        _role_locks[role_id] = lock
    return lock


@lru_cache(maxsize=1)
def default_consolidation_map() -> Dict[str, Tuple[str, ...]]:
    return {key: tuple(modules) for key, modules in load_consolidation_map().items()}


@dataclass(frozen=True)
class SkippedEntry:
    """A matrix entry that was not applied."""
    module: str
    action: Optional[str]
    reason: str


@dataclass
class MatrixUpdateResult:
    role_id: int
    role_name: str
    grants_version: int
    permissions: Dict[str, str]
    added: List[ModuleAction] = field(default_factory=list)
    removed: List[ModuleAction] = field(default_factory=list)
    skipped: List[SkippedEntry] = field(default_factory=list)


@dataclass
class CatalogView:
    resources: List[PermissionResource]
    actions: List[PermissionAction]


@dataclass
class PermissionMatrix:
    role: Role
    permissions: Dict[str, str]
    grants_version: int


class MatrixEditor:
    """
    Reads and replaces a role's permission matrix.

    Writes for the same role are serialized in-process with a per-role lock
    and across processes with a row lock on the role. Each write bumps
    Role.grants_version; callers that pass the version they last read get
    GrantConflict instead of silently overwriting a newer matrix.
    """

    def __init__(
        self,
        db: AsyncSession,
        consolidation_map: Optional[Mapping[str, Any]] = None,
        require_version: Optional[bool] = None,
    ):
        self.db = db
        self.catalog = PermissionCatalog(db)
        self.store = GrantStore(db)
        self.resolver = PermissionResolver(db)
        self._consolidation_map = consolidation_map
        self.require_version = config.REQUIRE_GRANTS_VERSION if require_version is None else require_version

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    async def replace_role_permissions(
        self,
        role_id: Any,
        permissions: Mapping[str, Optional[str]],
        acting_user_id: Optional[int],
        expected_version: Optional[int] = None,
    ) -> MatrixUpdateResult:
        """
        Make the role's grants exactly the given matrix.

        Modules with an empty action string are left out of the new set.
        Unknown modules and action codes are skipped and reported back. The
        grant change, the version bump and the audit entry are committed
        together; on any error the previous matrix stays in place.

        Raises:
            RoleNotFound: the role does not exist
            GrantConflict: expected_version no longer matches
            GrantVersionRequired: require_version is set, the role already has
                a matrix and no expected_version was given
        """
        normalized = normalize_role_id(role_id)
        if normalized is None:
            raise RoleNotFound(role_id)

        lock = _lock_for(normalized)
        async with lock:
            try:
                role = await self._lock_role(normalized)

                if expected_version is not None and role.grants_version != expected_version:
                    raise GrantConflict(role.id, expected_version, role.grants_version)
                if expected_version is None and role.grants_version > 0:
                    if self.require_version:
                        raise GrantVersionRequired(role.id, role.grants_version)
                    log.warning(
                        "Replacing permissions for role %s at version %d without expected_version",
                        role.id, role.grants_version,
                    )

                resources = await self.catalog.resource_map()
                actions = await self.catalog.action_map()
                pairs, skipped = self._parse(permissions, resources, actions)

                diff = await self.store.replace_all(role.id, pairs, acting_user_id)

                role.grants_version += 1
                role.updated_by = acting_user_id

                resource_names = {resource.id: resource.name for resource in resources.values()}
                action_codes = {action.id: action.code for action in actions.values()}

                def named(pair: GrantPair) -> ModuleAction:
                    resource_id, action_id = pair
                    return ModuleAction(module=resource_names[resource_id], action=action_codes[action_id])

                added = [named(pair) for pair in diff.added]
                removed = [named(pair) for pair in diff.removed]

                await create_audit_log(
                    self.db,
                    user_id=acting_user_id,
                    action="update_permissions",
                    resource_type="role",
                    resource_id=role.id,
                    details={
                        "grants_version": role.grants_version,
                        "added": [entry.model_dump() for entry in added],
                        "removed": [entry.model_dump() for entry in removed],
                        "skipped": [asdict(entry) for entry in skipped],
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        log.info(
            "Replaced permissions for role %s: %d added, %d removed, %d skipped (version %d)",
            role.id, len(added), len(removed), len(skipped), role.grants_version,
        )
        return MatrixUpdateResult(
            role_id=role.id,
            role_name=role.name,
            grants_version=role.grants_version,
            permissions=await self.resolver.resolve_compatibility(role.id),
            added=added,
            removed=removed,
            skipped=skipped,
        )

    async def _lock_role(self, role_id: int) -> Role:
        result = await self.db.execute(
            select(Role)
            .where(Role.id == role_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        role = result.scalars().first()
        if role is None:
            raise RoleNotFound(role_id)
        return role

    def _parse(
        self,
        permissions: Mapping[str, Optional[str]],
        resources: Mapping[str, PermissionResource],
        actions: Mapping[str, PermissionAction],
    ) -> Tuple[List[GrantPair], List[SkippedEntry]]:
        pairs: List[GrantPair] = []
        skipped: List[SkippedEntry] = []

        for module, csv in permissions.items():
            codes = split_actions(csv)
            if not codes:
                continue

            resource = resources.get(module)
            if resource is None:
                log.warning("Skipping unknown module %r", module)
                skipped.append(SkippedEntry(module=module, action=None, reason="unknown module"))
                continue

            for code in codes:
                action = actions.get(code)
                if action is None:
                    log.warning("Skipping unknown action %r on module %r", code, module)
                    skipped.append(SkippedEntry(module=module, action=code, reason="unknown action"))
                    continue
                pairs.append((resource.id, action.id))

        return pairs, skipped

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    async def get_role(self, role_id: Any) -> Role:
        normalized = normalize_role_id(role_id)
        role = await self.db.get(Role, normalized) if normalized is not None else None
        if role is None:
            raise RoleNotFound(role_id)
        return role

    async def get_permission_matrix(self, role_id: Any) -> PermissionMatrix:
        role = await self.get_role(role_id)
        return PermissionMatrix(
            role=role,
            permissions=await self.resolver.resolve_compatibility(role.id),
            grants_version=role.grants_version,
        )

    async def check_user_permission(self, user_id: int, module: str) -> ModuleActions:
        """The actions the user's role holds on one module."""
        user = await self.db.get(User, user_id)
        if user is None or user.role_id is None:
            raise NotFoundError("User or user role not found")
        return await self.resolver.resolve_module(user.role_id, module)

    async def get_catalog_view(self) -> CatalogView:
        return CatalogView(
            resources=await self.catalog.resources(),
            actions=await self.catalog.actions(),
        )

    async def available_modules(self) -> List[ModuleInfo]:
        return [
            ModuleInfo(key=resource.name, name=resource.display_name, group=resource.module_group)
            for resource in await self.catalog.resources()
        ]

    async def modules_grouped(self) -> Dict[str, List[ModuleInfo]]:
        grouped: Dict[str, List[ModuleInfo]] = {}
        for module in await self.available_modules():
            grouped.setdefault(module.group, []).append(module)
        return grouped

    # ------------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------------

    def consolidation_mapping(self) -> Dict[str, List[str]]:
        source = self._consolidation_map
        if source is None:
            source = default_consolidation_map()
        return {key: list(modules) for key, modules in source.items()}

    def consolidated_key_for(self, module: str) -> Optional[str]:
        for key, modules in self.consolidation_mapping().items():
            if module in modules:
                return key
        return None

    async def consolidate(self, role_id: Any) -> Dict[str, str]:
        """
        One entry per consolidated key: the sorted union of the codes held
        on its member modules ('' when none).
        """
        held = await self.resolver.resolve_compatibility(role_id)
        consolidated = {}
        for key, modules in self.consolidation_mapping().items():
            codes = set()
            for module in modules:
                codes.update(split_actions(held.get(module)))
            consolidated[key] = ",".join(sorted(codes))
        return consolidated
