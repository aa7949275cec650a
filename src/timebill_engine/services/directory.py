"""Read-through lookups of employees, clients and projects."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.models import Client, Employee, Project


class EntityNotFoundError(Exception):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class DirectoryService:
    """Directory boundary.

    Every call queries the store; nothing is cached between calls.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_project(self, project_id: UUID) -> Project | None:
        return await self.session.get(Project, project_id)

    async def get_project(self, project_id: UUID) -> Project:
        project = await self.find_project(project_id)
        if project is None:
            raise EntityNotFoundError("Project", project_id)
        return project

    async def get_employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise EntityNotFoundError("Employee", employee_id)
        return employee

    async def find_client(self, client_id: UUID | None) -> Client | None:
        if client_id is None:
            return None
        return await self.session.get(Client, client_id)

    async def list_payable_employees(self) -> list[Employee]:
        """Active employees with the EMPLOYEE role, ordered by name then id."""
        result = await self.session.execute(
            select(Employee)
            .where(Employee.role == "EMPLOYEE", Employee.status == "active")
            .order_by(Employee.name, Employee.id)
        )
        return list(result.scalars().all())
