"""Employee and role lookup."""

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.employee import Employee, EmployeeRole
from jobflow.services.errors import NotFoundError


async def get_employee(db: AsyncSession, employee_id: str) -> Employee:
    employee = await db.get(Employee, employee_id)
    if not employee:
        raise NotFoundError("Employee", employee_id)
    return employee


async def get_role(db: AsyncSession, employee_id: str) -> EmployeeRole:
    """Resolve an active employee's role server-side; callers never supply it.

    Inactive staff are reported as not found.
    """
    employee = await get_employee(db, employee_id)
    if not employee.is_active:
        raise NotFoundError("Employee", employee_id)
    return employee.role
