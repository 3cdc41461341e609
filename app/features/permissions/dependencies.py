"""
Request-time authorization for protected routes.

Implements:
- Permission requirements declared per route (module + broad action)
- The allow/deny rule over a principal's resolved ability list
- FastAPI dependencies for route protection and row scoping
- Audit logging helpers
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Union
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PermissionDenied
from app.features.permissions.filters import DEFAULT_OWNER_FIELDS, OwnerField
from app.features.permissions.models import AuditLog
from app.features.permissions.resolver import (
    BROAD_ACTIONS,
    OWN_VARIANTS,
    AccessScope,
    ActionSet,
    build_access_scope,
)
from app.features.permissions.schemas import ModuleAction
from app.features.users.dependencies import get_current_principal
from app.features.users.schemas import Principal
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Gate
# ============================================================================

@dataclass(frozen=True)
class PermissionRequirement:
    """
    What a protected operation needs: a module and one of C, V, E, D.

    Requirements are never declared on own codes; V is satisfied by a VO
    grant, never the other way round.
    """
    module: str
    action: str

    def __post_init__(self):
        if self.action not in BROAD_ACTIONS:
            raise ValueError(
                f"Required action must be one of {', '.join(BROAD_ACTIONS)}, got {self.action!r}"
            )


def is_satisfied(ability: Iterable[ModuleAction], requirement: PermissionRequirement) -> bool:
    own_variant = OWN_VARIANTS.get(requirement.action)
    return any(
        entry.module == requirement.module
        and (entry.action == requirement.action or (own_variant is not None and entry.action == own_variant))
        for entry in ability
    )


def check_ability(
    ability: Iterable[ModuleAction],
    requirement: Optional[PermissionRequirement],
) -> None:
    """
    Allow or deny entry.

    No requirement means no check. Denial raises PermissionDenied naming the
    action and module.
    """
    if requirement is None:
        return
    if not is_satisfied(ability, requirement):
        log.warning("Denied %s on %s", requirement.action, requirement.module)
        raise PermissionDenied(requirement.action, requirement.module)


def actions_for_module(ability: Iterable[ModuleAction], module: str) -> ActionSet:
    return ActionSet(entry.action for entry in ability if entry.module == module)


def scope_from_ability(
    ability: Iterable[ModuleAction],
    module: str,
    action: str,
    user_id: Optional[int],
    owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
) -> AccessScope:
    """Entry decision and row scope computed from an already resolved ability list."""
    return build_access_scope(actions_for_module(ability, module), module, action, user_id, owner_fields)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(module: str, action: str):
    """
    FastAPI dependency to require a permission on a module.

    Usage:
        @router.post("/employees")
        async def create_employee(
            principal: Principal = Depends(require_permission("employees", "C"))
        ):
            # Principal holds C on employees
            pass

    Args:
        module: Resource name
        action: One of C, V, E, D (V/E/D are also satisfied by VO/EO/DO)

    Returns:
        Dependency function that returns the current principal if allowed

    Raises:
        PermissionDenied: 403 if the principal lacks the permission
    """
    requirement = PermissionRequirement(module, action)

    async def permission_dependency(
        principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        check_ability(principal.ability, requirement)
        return principal

    permission_dependency.requirement = requirement
    return permission_dependency


def authorize(
    module: str,
    action: str,
    owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
):
    """
    FastAPI dependency combining the entry check with row scoping.

    Usage:
        @router.get("/work-orders")
        async def list_work_orders(
            access: AccessScope = Depends(authorize("work_order", "V", ("created_by",))),
            db: AsyncSession = Depends(get_db),
        ):
            stmt = select(WorkOrder).where(to_sqlalchemy(access.apply(), WorkOrder))
    """
    requirement = PermissionRequirement(module, action)

    async def scope_dependency(
        principal: Principal = Depends(get_current_principal)
    ) -> AccessScope:
        check_ability(principal.ability, requirement)
        return scope_from_ability(principal.ability, module, action, principal.user_id, owner_fields)

    scope_dependency.requirement = requirement
    return scope_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit log entry to the current transaction.

    The entry is flushed, not committed, so it lands or rolls back together
    with the change it describes.
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details,
    )

    db.add(audit_log)
    await db.flush()

    log.info(
        "Audit: user=%s action=%s resource=%s:%s",
        user_id, action, resource_type, resource_id
    )

    return audit_log
