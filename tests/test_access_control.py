import pytest

from kitchen_pos.core.errors import AuthorizationError
from kitchen_pos.services.access_control import AuthorizationService, CallerContext


def test_user_without_required_role_receives_403():
    caller = CallerContext(user_id=1, role="staff", restaurant_id=1)

    with pytest.raises(AuthorizationError) as exc:
        AuthorizationService.ensure_role(caller, ["kitchen_owner", "manager"], restaurant_id=1)

    assert exc.value.status_code == 403
    assert exc.value.message == "Insufficient permissions"


def test_tenant_isolation_blocks_cross_tenant_access_with_403():
    caller = CallerContext(user_id=2, role="kitchen_owner", restaurant_id=1)

    with pytest.raises(AuthorizationError) as exc:
        AuthorizationService.ensure_tenant_access(caller, 99)

    assert exc.value.message == "Restaurant not authorized"


def test_super_admin_crosses_tenants_and_roles():
    caller = CallerContext(user_id=3, role=" Super_Admin ")

    assert AuthorizationService.ensure_tenant_access(caller, 42) == 42
    AuthorizationService.ensure_role(caller, ["kitchen_owner"], restaurant_id=42)
    AuthorizationService.ensure_super_admin(caller)


def test_user_without_restaurant_is_denied():
    caller = CallerContext(user_id=4, role="kitchen_owner")

    with pytest.raises(AuthorizationError):
        AuthorizationService.ensure_tenant_access(caller, 1)


def test_staff_visibility_is_limited_to_assignments():
    staff = CallerContext(user_id=5, role="staff", restaurant_id=1, revenue_center_ids=frozenset({7}))
    manager = CallerContext(user_id=6, role="manager", restaurant_id=1)

    assert AuthorizationService.visible_revenue_center_ids(staff) == frozenset({7})
    assert AuthorizationService.visible_revenue_center_ids(manager) is None
    AuthorizationService.ensure_revenue_center_access(staff, 7)
    AuthorizationService.ensure_revenue_center_access(manager, 8)
    with pytest.raises(AuthorizationError):
        AuthorizationService.ensure_revenue_center_access(staff, 8)


def test_access_denied_is_logged(caplog):
    caller = CallerContext(user_id=9, role="staff", restaurant_id=1)

    with caplog.at_level("WARNING"), pytest.raises(AuthorizationError):
        AuthorizationService.ensure_super_admin(caller)

    assert "Access denied (super_admin_required)" in caplog.text
