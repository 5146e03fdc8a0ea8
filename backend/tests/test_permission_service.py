"""
Permission checks.

Verifies:
- Default roles grant what they advertise
- MANAGE_X implies VIEW_X
- Section-scoped grants only apply inside that section
"""

import pytest

from gearbook.models import Role, RolePermission
from gearbook.permissions import DEFAULT_ROLE_PERMISSIONS, ROLE_MEMBER, ROLE_STAFF, get_all_permission_codes
from gearbook.services import bootstrap_service
from gearbook.services.permission_service import PermissionChecker, PermissionDeniedError


@pytest.fixture
def checker():
    return PermissionChecker()


class TestDefaultRoles:
    def test_admin_holds_everything(self, db_session, checker, admin):
        assert checker.get_user_permissions(db_session, admin.id) == set(get_all_permission_codes())

    def test_member_holds_nothing(self, db_session, checker, member):
        assert checker.get_user_permissions(db_session, member.id) == set()
        with pytest.raises(PermissionDeniedError):
            checker.require_permission(db_session, member.id, "MANAGE_RESERVATIONS")

    def test_staff_manage_implies_view(self, db_session, checker, user_factory):
        staff = user_factory("desk@example.org", role_name=ROLE_STAFF)

        assert checker.has_permission(db_session, staff.id, "MANAGE_RESERVATIONS")
        assert checker.has_permission(db_session, staff.id, "VIEW_RESERVATIONS")
        assert not checker.has_permission(db_session, staff.id, "MANAGE_CREDITS")

    def test_bootstrap_is_idempotent(self, db_session, setup_roles):
        assert bootstrap_service.ensure_default_roles(db_session) == 0
        assert db_session.query(Role).count() == len(DEFAULT_ROLE_PERMISSIONS)


class TestScopedGrants:
    def test_section_scoped_grant(self, db_session, checker, member, section):
        role = db_session.query(Role).filter_by(name=ROLE_MEMBER).one()
        db_session.add(RolePermission(role_id=role.id, permission_key="MANAGE_PRODUCTS", section_id=section.id))
        db_session.commit()

        assert checker.has_permission(db_session, member.id, "MANAGE_PRODUCTS", section_id=section.id)
        assert checker.has_permission(db_session, member.id, "VIEW_PRODUCTS", section_id=section.id)
        assert not checker.has_permission(db_session, member.id, "MANAGE_PRODUCTS")
        assert not checker.has_permission(db_session, member.id, "MANAGE_PRODUCTS", section_id=section.id + 1)

    def test_unknown_code_denied(self, db_session, checker, admin):
        assert not checker.has_permission(db_session, admin.id, "LAUNCH_ROCKETS")

    def test_user_without_role(self, db_session, checker, user_factory):
        loner = user_factory("loner@example.org")
        assert checker.get_user_permissions(db_session, loner.id) == set()
