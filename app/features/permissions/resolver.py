"""
Permission resolution: turns a role id into effective permissions.

Implements:
- Flat (module, action) ability lists
- Per-module comma-joined action strings and the compatibility map
- Capability predicates with "own" precedence (VO beats V, EO beats E, DO beats D)
- Access scopes combining the entry decision with a row filter
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.filters import (
    DEFAULT_OWNER_FIELDS,
    FALSE,
    TRUE,
    OwnerField,
    Predicate,
    and_,
    ownership_predicate,
)
from app.features.permissions.models import PermissionAction, PermissionGrant, PermissionResource
from app.features.permissions.schemas import ModuleAction, ModuleActions
from app.utils import get_logger


log = get_logger(__name__)


CREATE = "C"
VIEW, VIEW_OWN = "V", "VO"
EDIT, EDIT_OWN = "E", "EO"
DELETE, DELETE_OWN = "D", "DO"

BROAD_ACTIONS = (CREATE, VIEW, EDIT, DELETE)
OWN_VARIANTS = {VIEW: VIEW_OWN, EDIT: EDIT_OWN, DELETE: DELETE_OWN}

# Largest id a 64-bit integer column can hold
MAX_ROLE_ID = 2**63 - 1


def normalize_role_id(value: Any) -> Optional[int]:
    """
    Coerce a role id from a token claim or path parameter.

    Returns None for anything that cannot name a role: None, booleans, NaN,
    non-numeric strings, zero, negative numbers and ids past the 64-bit
    integer range.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if math.isnan(value) or not value.is_integer():
            return None
        value = int(value)
    elif isinstance(value, str):
        value = value.strip()
        try:
            value = int(value)
        except ValueError:
            return None
    elif not isinstance(value, int):
        return None
    return value if 0 < value <= MAX_ROLE_ID else None


def split_actions(csv: Optional[str]) -> List[str]:
    """'C, V,,VO' -> ['C', 'V', 'VO']"""
    if not csv:
        return []
    return [code.strip() for code in csv.split(",") if code.strip()]


def join_actions(codes: Iterable[str]) -> str:
    """Comma-join codes, dropping repeats but keeping first-seen order."""
    return ",".join(dict.fromkeys(codes))


class ActionSet(frozenset):
    """
    The action codes a role holds on one module.

    The *_all properties are false whenever the matching own code is
    present, even if the broad code is granted too.
    """

    @classmethod
    def from_csv(cls, csv: Optional[str]) -> "ActionSet":
        return cls(split_actions(csv))

    @property
    def create(self) -> bool:
        return CREATE in self

    @property
    def view_all(self) -> bool:
        return VIEW in self and VIEW_OWN not in self

    @property
    def view_own(self) -> bool:
        return VIEW_OWN in self

    @property
    def any_view(self) -> bool:
        return VIEW in self or VIEW_OWN in self

    @property
    def edit_all(self) -> bool:
        return EDIT in self and EDIT_OWN not in self

    @property
    def edit_own(self) -> bool:
        return EDIT_OWN in self

    @property
    def any_edit(self) -> bool:
        return EDIT in self or EDIT_OWN in self

    @property
    def delete_all(self) -> bool:
        return DELETE in self and DELETE_OWN not in self

    @property
    def delete_own(self) -> bool:
        return DELETE_OWN in self

    @property
    def any_delete(self) -> bool:
        return DELETE in self or DELETE_OWN in self

    def allows(self, action: str) -> bool:
        """Entry check: the required code or, for V/E/D, its own variant."""
        return action in self or OWN_VARIANTS.get(action) in self

    def covers_all_rows(self, action: str) -> bool:
        if action == CREATE:
            return CREATE in self
        return action in self and OWN_VARIANTS[action] not in self


# ============================================================================
# Access Scopes
# ============================================================================

@dataclass(frozen=True)
class AccessScope:
    """
    Entry decision plus the rows it applies to.

    `scope` is TRUE when the broad action is held without its own variant,
    the ownership filter for `user_id` when only own access applies, and
    FALSE when access is denied.
    """
    allowed: bool
    module: str
    action: str
    user_id: Optional[int]
    scope_all: bool
    scope: Predicate

    def apply(self, base: Optional[Predicate] = None) -> Predicate:
        return and_(base, self.scope)


def build_access_scope(
    actions: ActionSet,
    module: str,
    action: str,
    user_id: Optional[int],
    owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
) -> AccessScope:
    if action not in BROAD_ACTIONS:
        raise ValueError(f"Access scopes take one of {', '.join(BROAD_ACTIONS)}, not {action!r}")

    allowed = actions.allows(action)
    if not allowed:
        scope_all, scope = False, FALSE
    elif action == CREATE or actions.covers_all_rows(action):
        scope_all, scope = True, TRUE
    elif user_id is None:
        scope_all, scope = False, FALSE
    else:
        scope_all, scope = False, ownership_predicate(user_id, owner_fields)

    return AccessScope(
        allowed=allowed,
        module=module,
        action=action,
        user_id=user_id,
        scope_all=scope_all,
        scope=scope,
    )


# ============================================================================
# Resolver
# ============================================================================

class PermissionResolver:
    """
    Read-side of the grant store.

    Queries never raise for a bad role id: missing, non-numeric, zero or
    negative ids resolve to no permissions without touching the database.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, role_id: Any) -> List[ModuleAction]:
        """Flat, deduplicated (module, action) list for the role."""
        role_id = normalize_role_id(role_id)
        if role_id is None:
            return []

        stmt = (
            select(PermissionResource.name, PermissionAction.code)
            .select_from(PermissionGrant)
            .join(PermissionResource, PermissionResource.id == PermissionGrant.resource_id)
            .join(PermissionAction, PermissionAction.id == PermissionGrant.action_id)
            .where(PermissionGrant.role_id == role_id)
            .order_by(PermissionResource.name, PermissionAction.id)
        )
        result = await self.db.execute(stmt)
        pairs = dict.fromkeys((module, action) for module, action in result.all())
        log.debug("Resolved %d permissions for role %s", len(pairs), role_id)
        return [ModuleAction(module=module, action=action) for module, action in pairs]

    async def resolve_module(self, role_id: Any, module: str) -> ModuleActions:
        """Comma-joined action codes the role holds on one module ('' if none)."""
        role_id = normalize_role_id(role_id)
        if role_id is None:
            return ModuleActions(module=module, action="")

        stmt = (
            select(PermissionAction.code)
            .select_from(PermissionGrant)
            .join(PermissionResource, PermissionResource.id == PermissionGrant.resource_id)
            .join(PermissionAction, PermissionAction.id == PermissionGrant.action_id)
            .where(
                PermissionGrant.role_id == role_id,
                PermissionResource.name == module,
            )
            .order_by(PermissionAction.id)
        )
        result = await self.db.execute(stmt)
        return ModuleActions(module=module, action=join_actions(result.scalars().all()))

    async def resolve_compatibility(self, role_id: Any) -> Dict[str, str]:
        """
        {module: "C,V,..."} for every module the role has grants on.

        Modules without grants are absent rather than mapped to ''.
        """
        grouped: Dict[str, List[str]] = {}
        for entry in await self.resolve(role_id):
            grouped.setdefault(entry.module, []).append(entry.action)
        return {module: join_actions(codes) for module, codes in grouped.items()}

    async def module_actions(self, role_id: Any, module: str) -> ActionSet:
        if normalize_role_id(role_id) is None:
            return ActionSet()
        return ActionSet.from_csv((await self.resolve_module(role_id, module)).action)

    # ------------------------------------------------------------------------
    # Capability predicates
    # ------------------------------------------------------------------------

    async def has_create(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).create

    async def has_view_all(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).view_all

    async def has_view_own(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).view_own

    async def has_any_view(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).any_view

    async def has_edit_all(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).edit_all

    async def has_edit_own(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).edit_own

    async def has_any_edit(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).any_edit

    async def has_delete_all(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).delete_all

    async def has_delete_own(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).delete_own

    async def has_any_delete(self, role_id: Any, module: str) -> bool:
        return (await self.module_actions(role_id, module)).any_delete

    async def access_scope(
        self,
        role_id: Any,
        module: str,
        user_id: Optional[int],
        action: str = VIEW,
        owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
    ) -> AccessScope:
        """
        Whether the role may perform `action` on `module`, and on which rows.

        For services that work outside the HTTP gate; one call answers both
        the entry question and the row-scoping question.
        """
        actions = await self.module_actions(role_id, module)
        return build_access_scope(actions, module, action, user_id, owner_fields)
