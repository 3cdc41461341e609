import pytest

from app.core.errors import PermissionDenied
from app.features.permissions.dependencies import (
    PermissionRequirement,
    authorize,
    check_ability,
    is_satisfied,
    require_permission,
    scope_from_ability,
)
from app.features.permissions.filters import FALSE, TRUE, Eq
from app.features.permissions.schemas import ModuleAction
from app.features.users.schemas import Principal


def ability(*pairs):
    return [ModuleAction(module=module, action=action) for module, action in pairs]


def test_view_own_satisfies_view():
    assert is_satisfied(ability(("employees", "VO")), PermissionRequirement("employees", "V"))


def test_edit_own_satisfies_edit_and_delete_own_satisfies_delete():
    held = ability(("vendor", "EO"), ("vendor", "DO"))

    assert is_satisfied(held, PermissionRequirement("vendor", "E"))
    assert is_satisfied(held, PermissionRequirement("vendor", "D"))
    assert not is_satisfied(held, PermissionRequirement("vendor", "V"))


def test_grant_on_other_module_does_not_count():
    assert not is_satisfied(ability(("vendor", "V")), PermissionRequirement("employees", "V"))


def test_empty_ability_is_denied_with_action_and_module():
    with pytest.raises(PermissionDenied) as excinfo:
        check_ability([], PermissionRequirement("employees", "C"))

    assert excinfo.value.action == "C"
    assert excinfo.value.module == "employees"
    assert excinfo.value.status_code == 403
    assert excinfo.value.detail == "You don't have permission to C employees"


def test_no_requirement_lets_everyone_in():
    check_ability([], None)


@pytest.mark.parametrize("action", ["VO", "EO", "DO", "X", ""])
def test_requirements_only_take_broad_actions(action):
    with pytest.raises(ValueError):
        PermissionRequirement("employees", action)


def test_require_permission_validates_at_declaration():
    with pytest.raises(ValueError):
        require_permission("employees", "VO")

    dependency = require_permission("employees", "V")
    assert dependency.requirement == PermissionRequirement("employees", "V")


def test_scope_is_everything_with_broad_view():
    scope = scope_from_ability(ability(("work_order", "V")), "work_order", "V", user_id=5)

    assert scope.allowed and scope.scope_all
    assert scope.scope == TRUE
    assert scope.apply(Eq("status", "open")) == Eq("status", "open")


def test_scope_is_owner_rows_when_own_variant_held():
    scope = scope_from_ability(ability(("work_order", "V"), ("work_order", "VO")), "work_order", "V", user_id=5)

    assert scope.allowed and not scope.scope_all
    assert scope.scope == Eq("created_by", 5)


def test_scope_without_user_matches_nothing():
    scope = scope_from_ability(ability(("work_order", "VO")), "work_order", "V", user_id=None)

    assert scope.allowed
    assert scope.scope == FALSE


@pytest.mark.asyncio
async def test_authorize_dependency_checks_and_scopes():
    dependency = authorize("work_order", "E", owner_fields=("created_by", "assigned_to"))
    principal = Principal(
        user_id=3,
        email="tech@example.com",
        role_id=2,
        ability=ability(("work_order", "EO")),
    )

    access = await dependency(principal=principal)

    assert access.allowed and not access.scope_all
    assert access.apply(Eq("status", "open")).matches({"status": "open", "assigned_to": 3})
    assert not access.apply(Eq("status", "open")).matches({"status": "open", "created_by": 4})

    with pytest.raises(PermissionDenied):
        await authorize("work_order", "D")(principal=principal)
