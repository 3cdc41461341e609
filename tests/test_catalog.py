import json

import pytest

from app.features.permissions.catalog import PermissionCatalog, seed_catalog
from app.features.permissions.config import (
    DEFAULT_CONSOLIDATION_MAP,
    display_name_for,
    load_consolidation_map,
)


@pytest.mark.asyncio
async def test_seeding_twice_adds_nothing(db):
    assert await seed_catalog(db) == (0, 0)


@pytest.mark.asyncio
async def test_lookups(db):
    catalog = PermissionCatalog(db)

    employees = await catalog.get_resource("employees")
    assert employees.module_group == "HR"
    assert employees.display_name == "Employees"
    assert await catalog.get_resource("nope") is None

    view_own = await catalog.get_action("VO")
    assert view_own.requires_ownership is True
    assert (await catalog.get_action("V")).requires_ownership is False
    assert await catalog.get_action("X") is None


def test_display_names():
    assert display_name_for("employee_insurances") == "Employee Insurances"
    assert display_name_for("globalSetting") == "GlobalSetting"


def test_default_consolidation_map_is_a_copy():
    mapping = load_consolidation_map()
    mapping["settings_inventory"].append("vendor")

    assert "vendor" not in DEFAULT_CONSOLIDATION_MAP["settings_inventory"]


def test_consolidation_map_from_file(tmp_path):
    path = tmp_path / "consolidation.json"
    path.write_text(json.dumps({"settings_people": ["employees", "user"]}))

    assert load_consolidation_map(str(path)) == {"settings_people": ["employees", "user"]}


@pytest.mark.parametrize("content", [[], {"key": "employees"}, {"key": [1, 2]}])
def test_malformed_consolidation_file_is_rejected(tmp_path, content):
    path = tmp_path / "consolidation.json"
    path.write_text(json.dumps(content))

    with pytest.raises(ValueError):
        load_consolidation_map(str(path))
