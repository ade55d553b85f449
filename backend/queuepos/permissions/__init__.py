# Overview: Permission system package.

from .categories import PermissionCategory
from .definitions import PERMISSION_DEFINITIONS, QUEUE_PERMISSIONS, SALES_PERMISSIONS
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_role_names,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "QUEUE_PERMISSIONS",
    "SALES_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_role_names",
]
