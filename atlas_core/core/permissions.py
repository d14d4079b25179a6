# atlas_core/core/permissions.py
"""
Role normalization and the module permission table.

Roles arrive from the `people` table in whatever spelling the operators typed
("GERENCIA", "Vendedora", "coordinacion"...). Everything downstream works with the
closed set in `ROLES`.
"""

from typing import Dict, List, Literal, Tuple

from atlas_core.core.config import settings

Role = Literal["admin", "coordinator", "leader", "advisor", "promoter", "logistics", "unknown"]
ModuleKey = Literal["dashboard", "sales", "inventory", "hr", "productivity", "cash", "configuration"]

ROLES: Tuple[Role, ...] = ("admin", "coordinator", "leader", "advisor", "promoter", "logistics", "unknown")
MODULES: Tuple[ModuleKey, ...] = ("dashboard", "sales", "inventory", "hr", "productivity", "cash", "configuration")

# Raw spellings stored in people.fenix_role
_ROLE_ALIASES: Dict[str, Role] = {
    "GERENCIA": "admin",
    "ADMIN": "admin",
    "ADMINISTRADOR": "admin",
    "PROMOTOR": "promoter",
    "PROMOTORA": "promoter",
    "COORDINADOR": "coordinator",
    "COORDINADORA": "coordinator",
    "COORDINACION": "coordinator",
    "LIDER": "leader",
    "JEFE": "leader",
    "SUPERVISOR": "leader",
    "LOGISTICA": "logistics",
    "RUTAS": "logistics",
    "DELIVERY": "logistics",
    "ASESOR": "advisor",
    "VENDEDOR": "advisor",
    "VENDEDORA": "advisor",
}

# Roles allowed to validate or remove other people's sales
APPROVER_ROLES = frozenset({"admin", "coordinator", "leader"})

MODULE_PERMISSIONS: Dict[ModuleKey, Tuple[Role, ...]] = {
    "dashboard": ("admin", "coordinator", "leader", "advisor", "promoter", "logistics", "unknown"),
    "sales": ("admin", "coordinator", "leader", "advisor", "promoter"),
    "inventory": ("admin", "coordinator", "logistics"),
    "hr": ("admin", "coordinator", "leader"),
    "productivity": ("admin", "coordinator", "leader"),
    "cash": ("admin", "coordinator", "leader"),
    "configuration": ("admin",),
}

# Post-login landing page per role
ROLE_HOME_ROUTES: Dict[Role, str] = {
    "admin": "/dashboard",
    "coordinator": "/logistica",
    "leader": "/dashboard/sales-report",
    "advisor": "/mi/resumen",
    "promoter": "/mi/resumen",
    "logistics": "/logistica",
}


def normalize_role(raw: str | None) -> Role:
    key = str(raw or "").strip().upper()
    return _ROLE_ALIASES.get(key, "unknown")


def is_module_enabled(module: str) -> bool:
    return module in MODULES and module not in settings.DISABLED_MODULES


def can_access_module(role: str, module: str) -> bool:
    """Admins and unrecognized roles see every enabled module."""
    if not is_module_enabled(module):
        return False
    if role in ("admin", "unknown"):
        return True
    return role in MODULE_PERMISSIONS.get(module, ())


def module_list_for_role(role: str) -> List[ModuleKey]:
    return [m for m in MODULES if can_access_module(role, m)]


def is_approver(role: str) -> bool:
    return role in APPROVER_ROLES


def home_route_for_role(role: str) -> str:
    return ROLE_HOME_ROUTES.get(role, "/dashboard")
