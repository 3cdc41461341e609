import math

import pytest

from app.features.permissions.resolver import (
    ActionSet,
    PermissionResolver,
    join_actions,
    normalize_role_id,
    split_actions,
)
from app.features.permissions.schemas import ModuleAction, ModuleActions
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.models import PermissionGrant


@pytest.mark.parametrize(
    "value, expected",
    [
        (3, 3),
        ("3", 3),
        (" 12 ", 12),
        (4.0, 4),
        (None, None),
        (True, None),
        (math.nan, None),
        (2.5, None),
        ("abc", None),
        ("", None),
        (0, None),
        ("0", None),
        (-1, None),
        ("-7", None),
        ("--5", None),
        ("-+3", None),
        ("²", None),
        ("99999999999999999999", None),
        (10**20, None),
        (1e30, None),
        (2**63 - 1, 2**63 - 1),
    ],
)
def test_normalize_role_id(value, expected):
    assert normalize_role_id(value) == expected


def test_split_and_join_actions():
    assert split_actions(" C, V,,VO ") == ["C", "V", "VO"]
    assert split_actions("") == []
    assert split_actions(None) == []
    assert join_actions(["V", "C", "V"]) == "V,C"


def test_own_variant_takes_precedence():
    actions = ActionSet.from_csv("V,VO,E,D")

    assert actions.view_own
    assert not actions.view_all
    assert actions.any_view
    assert actions.edit_all
    assert not actions.edit_own
    assert actions.delete_all
    assert not actions.create


@pytest.mark.asyncio
async def test_resolve_returns_deduplicated_pairs_in_stable_order(db, make_role):
    role = await make_role("Sales", {"vendor": "V", "employees": "E,C"})

    resolved = await PermissionResolver(db).resolve(role.id)

    assert resolved == [
        ModuleAction(module="employees", action="C"),
        ModuleAction(module="employees", action="E"),
        ModuleAction(module="vendor", action="V"),
    ]


@pytest.mark.asyncio
async def test_duplicate_grant_rows_resolve_once(db, make_role):
    role = await make_role("Dupes", {"employees": "V"})
    catalog = PermissionCatalog(db)
    resource = await catalog.get_resource("employees")
    action = await catalog.get_action("V")
    # a second row for the same pair
    db.add(PermissionGrant(role_id=role.id, resource_id=resource.id, action_id=action.id))
    await db.commit()

    resolver = PermissionResolver(db)
    assert await resolver.resolve(role.id) == [ModuleAction(module="employees", action="V")]
    assert await resolver.resolve_module(role.id, "employees") == ModuleActions(module="employees", action="V")


INVALID_ROLE_IDS = [
    None, 0, -3, "abc", math.nan, "undefined", "--5", "-+3", "²", "99999999999999999999", 10**20,
]

PREDICATES = [
    "has_create",
    "has_view_all",
    "has_view_own",
    "has_any_view",
    "has_edit_all",
    "has_edit_own",
    "has_any_edit",
    "has_delete_all",
    "has_delete_own",
    "has_any_delete",
]


@pytest.mark.asyncio
@pytest.mark.parametrize("role_id", INVALID_ROLE_IDS)
async def test_invalid_role_ids_resolve_to_nothing(db, role_id):
    resolver = PermissionResolver(db)

    assert await resolver.resolve(role_id) == []
    assert await resolver.resolve_module(role_id, "employees") == ModuleActions(module="employees", action="")
    assert await resolver.resolve_compatibility(role_id) == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("predicate", PREDICATES)
@pytest.mark.parametrize("role_id", INVALID_ROLE_IDS)
async def test_invalid_role_ids_fail_every_predicate(db, role_id, predicate):
    assert await getattr(PermissionResolver(db), predicate)(role_id, "employees") is False


@pytest.mark.asyncio
async def test_unknown_role_resolves_to_nothing(db):
    assert await PermissionResolver(db).resolve(9999) == []


@pytest.mark.asyncio
async def test_resolve_module_uses_catalog_order(db, make_role):
    role = await make_role("Ordered", {"employees": "DO,V,C"})

    result = await PermissionResolver(db).resolve_module(role.id, "employees")

    assert result.action == "C,V,DO"


@pytest.mark.asyncio
async def test_compatibility_map_omits_modules_without_grants(db, make_role):
    role = await make_role("Compat", {"employees": "C,V", "vendor": ""})

    assert await PermissionResolver(db).resolve_compatibility(role.id) == {"employees": "C,V"}


@pytest.mark.asyncio
async def test_edit_all_is_false_when_edit_own_is_also_granted(db, make_role):
    both = await make_role("Both", {"employees": "E,EO"})
    broad = await make_role("Broad", {"employees": "E"})
    resolver = PermissionResolver(db)

    assert await resolver.has_edit_all(both.id, "employees") is False
    assert await resolver.has_edit_own(both.id, "employees") is True
    assert await resolver.has_any_edit(both.id, "employees") is True
    assert await resolver.has_edit_all(broad.id, "employees") is True
    assert await resolver.has_edit_own(broad.id, "employees") is False


@pytest.mark.asyncio
async def test_view_and_view_own_together_mean_own_only(db, make_role):
    role = await make_role("Viewer", {"vendor": "V,VO"})
    resolver = PermissionResolver(db)

    assert await resolver.has_view_all(role.id, "vendor") is False
    assert await resolver.has_view_own(role.id, "vendor") is True
    assert await resolver.has_any_view(role.id, "vendor") is True
    assert await resolver.has_any_delete(role.id, "vendor") is False
    assert await resolver.has_delete_own(role.id, "vendor") is False


@pytest.mark.asyncio
async def test_access_scope_combines_entry_and_rows(db, make_role):
    role = await make_role("Scoped", {"work_order": "V,VO,E", "vendor": "C"})
    resolver = PermissionResolver(db)

    own = await resolver.access_scope(role.id, "work_order", user_id=7)
    assert own.allowed and not own.scope_all
    assert own.scope.matches({"created_by": 7})
    assert not own.scope.matches({"created_by": 8})

    edit = await resolver.access_scope(role.id, "work_order", user_id=7, action="E")
    assert edit.allowed and edit.scope_all
    assert edit.scope.matches({"created_by": 8})

    denied = await resolver.access_scope(role.id, "vendor", user_id=7, action="D")
    assert not denied.allowed
    assert not denied.scope.matches({"created_by": 7})

    create = await resolver.access_scope(role.id, "vendor", user_id=7, action="C")
    assert create.allowed and create.scope_all


@pytest.mark.asyncio
async def test_access_scope_rejects_own_codes(db, make_role):
    role = await make_role("OwnCode", {"work_order": "VO"})

    with pytest.raises(ValueError):
        await PermissionResolver(db).access_scope(role.id, "work_order", user_id=1, action="VO")


@pytest.mark.asyncio
async def test_edit_own_alone_grants_no_edit_all(db, make_role):
    role = await make_role("Own Editor", {"employees": "EO"})
    resolver = PermissionResolver(db)

    assert await resolver.has_edit_all(role.id, "employees") is False
    assert await resolver.has_edit_own(role.id, "employees") is True
    assert await resolver.has_any_edit(role.id, "employees") is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "actions, delete_all, delete_own",
    [
        ("D", True, False),
        ("DO", False, True),
        ("D,DO", False, True),
    ],
)
async def test_delete_own_takes_precedence(db, make_role, actions, delete_all, delete_own):
    role = await make_role(f"Deleter {actions}", {"employees": actions})
    resolver = PermissionResolver(db)

    assert await resolver.has_delete_all(role.id, "employees") is delete_all
    assert await resolver.has_delete_own(role.id, "employees") is delete_own
    assert await resolver.has_any_delete(role.id, "employees") is True
