# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    IMPLIED_PERMISSIONS,
    USER_PERMISSIONS,
    CREDIT_PERMISSIONS,
    SECTION_PERMISSIONS,
    PRODUCT_PERMISSIONS,
    RESERVATION_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, DEFAULT_ROLE_DESCRIPTIONS, ROLE_ADMIN, ROLE_STAFF, ROLE_MEMBER
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    expand_permissions,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "IMPLIED_PERMISSIONS",
    "USER_PERMISSIONS",
    "CREDIT_PERMISSIONS",
    "SECTION_PERMISSIONS",
    "PRODUCT_PERMISSIONS",
    "RESERVATION_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "DEFAULT_ROLE_DESCRIPTIONS",
    "ROLE_ADMIN",
    "ROLE_STAFF",
    "ROLE_MEMBER",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "expand_permissions",
]
