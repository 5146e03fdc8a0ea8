# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    USERS = "USERS"
    CREDITS = "CREDITS"
    SECTIONS = "SECTIONS"
    PRODUCTS = "PRODUCTS"
    RESERVATIONS = "RESERVATIONS"
