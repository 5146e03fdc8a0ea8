# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "View member accounts and their status",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, suspend and edit member accounts",
        PermissionCategory.USERS,
    ),
]

# -- CREDITS --

CREDIT_PERMISSIONS = [
    (
        "VIEW_CREDITS",
        "View Credits",
        "View any member's balance and transaction history",
        PermissionCategory.CREDITS,
    ),
    (
        "MANAGE_CREDITS",
        "Manage Credits",
        "Add or remove credits from a member's balance",
        PermissionCategory.CREDITS,
    ),
]

# -- SECTIONS --

SECTION_PERMISSIONS = [
    (
        "MANAGE_SECTIONS",
        "Manage Sections",
        "Edit sections, closures and pickup/return time slots",
        PermissionCategory.SECTIONS,
    ),
]

# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View products and their movement history",
        PermissionCategory.PRODUCTS,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create and edit products",
        PermissionCategory.PRODUCTS,
    ),
]

# -- RESERVATIONS --

RESERVATION_PERMISSIONS = [
    (
        "VIEW_RESERVATIONS",
        "View Reservations",
        "View every member's reservations",
        PermissionCategory.RESERVATIONS,
    ),
    (
        "MANAGE_RESERVATIONS",
        "Manage Reservations",
        "Create on behalf of members, check out, return, refund and penalize",
        PermissionCategory.RESERVATIONS,
    ),
]


PERMISSION_DEFINITIONS = (
    USER_PERMISSIONS
    + CREDIT_PERMISSIONS
    + SECTION_PERMISSIONS
    + PRODUCT_PERMISSIONS
    + RESERVATION_PERMISSIONS
)

# MANAGE_X grants VIEW_X
IMPLIED_PERMISSIONS = {
    "MANAGE_USERS": {"VIEW_USERS"},
    "MANAGE_CREDITS": {"VIEW_CREDITS"},
    "MANAGE_PRODUCTS": {"VIEW_PRODUCTS"},
    "MANAGE_RESERVATIONS": {"VIEW_RESERVATIONS"},
}
