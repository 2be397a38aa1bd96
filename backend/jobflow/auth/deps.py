"""FastAPI dependencies for resolving the calling employee.

Authentication is handled upstream (gateway / SSO); by the time a request
reaches this service it carries the caller's employee id in the
``X-Employee-Id`` header.  The role is always looked up here, never
trusted from the request.

Dependencies:
  get_current_actor  → load the employee, return an Actor(id, role)
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor
from jobflow.database import get_db
from jobflow.services.employees import get_role
from jobflow.services.errors import NotFoundError


async def get_current_actor(
    x_employee_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not x_employee_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Employee-Id header",
        )

    try:
        role = await get_role(db, x_employee_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Employee not found or inactive",
        )

    return Actor(employee_id=x_employee_id, role=role)
