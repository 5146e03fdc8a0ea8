# Overview: Default roles created by `flask system init` and the permissions they grant.

from .definitions import PERMISSION_DEFINITIONS

ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
ROLE_MEMBER = "member"

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_STAFF: [
        "VIEW_USERS",
        "VIEW_CREDITS",
        "VIEW_PRODUCTS",
        "MANAGE_RESERVATIONS",
    ],
    ROLE_MEMBER: [],
}

DEFAULT_ROLE_DESCRIPTIONS = {
    ROLE_ADMIN: "Full access",
    ROLE_STAFF: "Front desk: checkout, return and reservation management",
    ROLE_MEMBER: "Self-service reservations only",
}
