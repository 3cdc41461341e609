"""
Permission catalog and consolidation configuration.

Defines the seeded action codes, the seeded resources (protected modules)
and how fine-grained modules roll up into the coarse groups shown in the
admin UI. Used by the seed script and by the matrix editor.
"""
import json
from typing import Dict, List, Optional

from app.core import config
from app.utils import get_logger


log = get_logger(__name__)


# code -> (display name, description, requires ownership)
# Seeded in this order; action ids follow it.
DEFAULT_ACTIONS = [
    ("C", "Create", "Create new records", False),
    ("V", "View All", "View every record in the module", False),
    ("VO", "View Own", "View only records owned by the user", True),
    ("E", "Edit All", "Edit every record in the module", False),
    ("EO", "Edit Own", "Edit only records owned by the user", True),
    ("D", "Delete All", "Delete every record in the module", False),
    ("DO", "Delete Own", "Delete only records owned by the user", True),
]

# module group -> resource names
DEFAULT_RESOURCES: Dict[str, List[str]] = {
    "HR": [
        "employees", "service_provider", "internal_employee", "leaves_requests",
        "employee_insurances", "warning_letters", "manpower",
    ],
    "Sales": [
        "client", "invoice", "quotation", "leads", "sales_orders", "estimates",
        "creditNote", "debitNote",
    ],
    "Purchasing": [
        "vendor", "supplier", "supplier_type", "purchase_order", "vendor_request",
    ],
    "Inventory": [
        "products", "materials", "material_categories", "units", "warehouses",
        "outlets", "stocks", "stocks_transactions", "consumptions",
    ],
    "Accommodation": ["accommodation", "rent_payment", "bill_payment"],
    "Assets": [
        "assets_managments", "asset_work_orders", "asset_maintenances",
        "asset_make", "asset_type", "asset_capacity",
    ],
    "Operations": ["work_order", "task_managment", "call_center", "service_order"],
    "Finance": [
        "wallets", "petty_cash", "bank_account", "expense_accounts", "journals",
        "payment", "finance_settings",
    ],
    "Reference": ["cities", "nationality", "banks", "skills", "profession"],
    "Settings": [
        "settings", "user_level", "user", "user_settings", "other_settings",
        "fm_service_settings", "business_setting", "globalSetting", "audit",
    ],
    "Reports": ["dashboard", "widgets", "sales_reporting", "aging_report"],
}

# consolidated key -> underlying modules, for the admin UI only
DEFAULT_CONSOLIDATION_MAP: Dict[str, List[str]] = {
    "settings_inventory": [
        "products",
        "materials",
        "material_categories",
        "units",
        "warehouses",
        "outlets",
    ],
    "settings_assets": [
        "asset_make",
        "asset_type",
        "asset_capacity",
        "assets_managments",
    ],
    "settings_reference": [
        "cities",
        "nationality",
        "banks",
        "skills",
        "profession",
    ],
    "settings_system": [
        "user_settings",
        "other_settings",
        "fm_service_settings",
        "business_setting",
        "finance_settings",
    ],
}


def display_name_for(resource_name: str) -> str:
    """employees_insurances -> Employees Insurances"""
    return " ".join(word[:1].upper() + word[1:] for word in resource_name.split("_"))


def load_consolidation_map(path: Optional[str] = None) -> Dict[str, List[str]]:
    """
    Load the consolidation map.

    Reads the JSON object at `path` (or PERMISSION_CONSOLIDATION_FILE) when
    one is configured, otherwise returns a copy of the default map. Every
    value must be a list of module names.
    """
    path = path or config.PERMISSION_CONSOLIDATION_FILE
    if not path:
        return {key: list(modules) for key, modules in DEFAULT_CONSOLIDATION_MAP.items()}

    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)

    if not isinstance(data, dict):
        raise ValueError(f"Consolidation map in {path} must be a JSON object")
    for key, modules in data.items():
        if not isinstance(modules, list) or not all(isinstance(m, str) for m in modules):
            raise ValueError(f"Consolidation entry {key!r} in {path} must be a list of module names")

    log.info("Loaded consolidation map with %d keys from %s", len(data), path)
    return {key: list(modules) for key, modules in data.items()}
