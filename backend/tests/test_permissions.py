"""Role policy tests."""

import pytest

from jobflow.auth.permissions import (
    ALL_PERMISSIONS,
    ROLE_DEFAULTS,
    Actor,
    ensure_permitted,
    has_permission,
)
from jobflow.models.employee import EmployeeRole
from jobflow.services.employees import get_role
from jobflow.services.errors import ForbiddenError, NotFoundError

ADMIN = EmployeeRole.ADMIN
MANAGER = EmployeeRole.MANAGER
ADVISOR = EmployeeRole.SERVICE_ADVISOR
TECH = EmployeeRole.TECHNICIAN
STORES = EmployeeRole.STORES

EXPECTED = {
    "requisition.create": {ADMIN, TECH},
    "requisition.approve": {ADMIN, STORES},
    "requisition.disburse": {ADMIN, STORES},
    "requisition.reject": {ADMIN, STORES},
    "requisition.mark_not_available": {ADMIN, STORES},
    "requisition.mark_used": {ADMIN, TECH, ADVISOR},
    "requisition.read": set(EmployeeRole),
    "jobcard.create": {ADMIN, MANAGER, ADVISOR},
    "jobcard.freeze": {ADMIN, MANAGER, ADVISOR},
    "jobcard.close": {ADMIN, MANAGER, ADVISOR},
    "jobcard.priority": {ADMIN, MANAGER, ADVISOR},
    "jobcard.assign": {ADMIN, MANAGER, ADVISOR},
    "jobcard.status": {ADMIN, MANAGER, ADVISOR, TECH},
    "timesheet.write": {ADMIN, MANAGER, TECH},
    "invoice.read": {ADMIN, ADVISOR},
    "invoice.write": {ADMIN, ADVISOR},
    "invoice.payment": {ADMIN, ADVISOR},
}


@pytest.mark.unit
class TestRolePolicy:

    def test_every_permission_covered(self):
        assert set(EXPECTED) == ALL_PERMISSIONS

    @pytest.mark.parametrize("permission", sorted(EXPECTED))
    def test_roles_granted(self, permission):
        granted = {role for role in EmployeeRole if has_permission(role, permission)}
        assert granted == EXPECTED[permission]

    def test_role_table_only_uses_known_permissions(self):
        for perms in ROLE_DEFAULTS.values():
            assert perms <= ALL_PERMISSIONS

    def test_unknown_permission_denied(self):
        assert not has_permission(ADMIN, "invoice.delete")


@pytest.mark.unit
class TestEnsurePermitted:

    def test_allows(self):
        ensure_permitted(Actor(employee_id="e1", role=STORES), "requisition.disburse")

    def test_denies_with_role_in_message(self):
        with pytest.raises(ForbiddenError) as exc:
            ensure_permitted(Actor(employee_id="e1", role=TECH), "invoice.read")
        assert "TECHNICIAN" in exc.value.message
        assert exc.value.status_code == 403


@pytest.mark.integration
@pytest.mark.asyncio
class TestRoleLookup:

    async def test_role_resolved_from_database(self, db_session, stores):
        assert await get_role(db_session, stores.employee_id) == STORES

    async def test_inactive_employee_not_found(self, db_session, employee_factory):
        gone = await employee_factory(TECH, is_active=False)
        with pytest.raises(NotFoundError):
            await get_role(db_session, gone.id)
