# Overview: Service-layer permission checks (role grants, optionally scoped to a section).

"""
Permission Checking

WHY: Admin-only lifecycle operations (checkout, return, refund, penalty,
admin create) are gated before they reach the reservation service.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit grant
- MANAGE_X implies VIEW_X
- A grant with section_id NULL applies everywhere; a scoped grant only to
  that section
"""

from ..models import RolePermission, User
from ..permissions import expand_permissions, validate_permission_code


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


class PermissionChecker:
    def get_user_permissions(self, session, user_id: int, section_id: int | None = None) -> set[str]:
        """
        Permission codes the user holds globally, plus those scoped to
        section_id when one is given.
        """
        user = session.get(User, user_id)
        if not user or not user.role_id:
            return set()

        grants = session.query(RolePermission).filter_by(role_id=user.role_id).all()
        codes = {
            g.permission_key
            for g in grants
            if g.section_id is None or (section_id is not None and g.section_id == section_id)
        }
        return expand_permissions(codes)

    def has_permission(self, session, user_id: int, permission_code: str, section_id: int | None = None) -> bool:
        if not validate_permission_code(permission_code):
            return False
        return permission_code in self.get_user_permissions(session, user_id, section_id)

    def require_permission(self, session, user_id: int, permission_code: str, section_id: int | None = None) -> None:
        if not self.has_permission(session, user_id, permission_code, section_id):
            raise PermissionDeniedError(f"Missing permission {permission_code}")
