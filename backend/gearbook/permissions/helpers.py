# Overview: Utility functions for permission lookups and validation.

from .definitions import IMPLIED_PERMISSIONS, PERMISSION_DEFINITIONS


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()


def expand_permissions(codes):
    """Add the VIEW_X implied by every MANAGE_X in codes."""
    expanded = set(codes)
    for code in codes:
        expanded |= IMPLIED_PERMISSIONS.get(code, set())
    return expanded
