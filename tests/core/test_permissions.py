# tests/core/test_permissions.py
import pytest

from atlas_core.core.config import settings
from atlas_core.core.permissions import (
    MODULES,
    can_access_module,
    home_route_for_role,
    is_approver,
    module_list_for_role,
    normalize_role,
)


@pytest.mark.parametrize("raw, expected", [
    ("GERENCIA", "admin"),
    ("admin", "admin"),
    (" Vendedora ", "advisor"),
    ("PROMOTOR", "promoter"),
    ("coordinacion", "coordinator"),
    ("SUPERVISOR", "leader"),
    ("RUTAS", "logistics"),
    ("", "unknown"),
    (None, "unknown"),
    ("CAJERO", "unknown"),
])
def test_normalize_role(raw, expected):
    assert normalize_role(raw) == expected


@pytest.mark.parametrize("role", ["admin", "unknown"])
def test_admin_and_unknown_open_every_module(role):
    assert module_list_for_role(role) == list(MODULES)


def test_promoter_is_limited():
    assert module_list_for_role("promoter") == ["dashboard", "sales"]
    assert not can_access_module("promoter", "configuration")


def test_disabled_module_is_closed_for_everyone(monkeypatch):
    monkeypatch.setattr(settings, "DISABLED_MODULES", ["cash"])
    assert not can_access_module("admin", "cash")
    assert not can_access_module("unknown", "cash")
    assert "cash" not in module_list_for_role("leader")
    assert can_access_module("leader", "hr")


def test_unknown_module_is_closed():
    assert not can_access_module("admin", "payroll")


def test_approvers_and_home_routes():
    assert {r for r in ("admin", "coordinator", "leader", "advisor", "promoter") if is_approver(r)} == {
        "admin", "coordinator", "leader",
    }
    assert home_route_for_role("promoter") == "/mi/resumen"
    assert home_route_for_role("unknown") == "/dashboard"
