"""Owner-scoped data access.

Every Project, Patient and BillingAccount row belongs to exactly one owner
(the authenticated user id). ``ScopedRepository`` attaches the owner filter to
every statement it builds, so call sites never repeat it.
"""

import logging
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import Select, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.errors import NotFoundError
from curabot.storage.models import BillingAccount, Patient, Project

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopedRepository(Generic[T]):
    """CRUD helpers for one owner-scoped model."""

    def __init__(self, session: AsyncSession, model: type[T], owner_id: str, label: str):
        self.session = session
        self.model = model
        self.owner_id = owner_id
        self.label = label

    def _owned(self):
        return self.model.owner_id == self.owner_id

    def select(self, *criteria) -> Select:
        return select(self.model).where(self._owned(), *criteria)

    async def find(self, *criteria, order_by=None, options=()) -> list[T]:
        query = self.select(*criteria).options(*options)
        if order_by is not None:
            query = query.order_by(order_by)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get(self, row_id: str, options=()) -> Optional[T]:
        query = (
            self.select(self.model.id == row_id)
            .options(*options)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def require(self, row_id: str, options=()) -> T:
        """Like get(), but raise NotFoundError for absent and foreign rows alike."""
        row = await self.get(row_id, options=options)
        if row is None:
            raise NotFoundError(f"{self.label} not found")
        return row

    async def exists(self, row_id: str) -> bool:
        result = await self.session.execute(
            select(self.model.id).where(self._owned(), self.model.id == row_id)
        )
        return result.scalar_one_or_none() is not None

    async def update(self, row_id: str, values: dict[str, Any]) -> bool:
        if not values:
            return await self.exists(row_id)
        result = await self.session.execute(
            update(self.model)
            .where(self._owned(), self.model.id == row_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete(self, row_id: str) -> bool:
        result = await self.session.execute(
            delete(self.model)
            .where(self._owned(), self.model.id == row_id)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount > 0
        if deleted:
            logger.info("Deleted %s %s for owner %s", self.label.lower(), row_id, self.owner_id)
        return deleted


class OwnerScope:
    """Bundle of repositories bound to a single owner."""

    def __init__(self, session: AsyncSession, owner_id: str):
        if not owner_id:
            raise ValueError("owner_id is required")
        self.session = session
        self.owner_id = owner_id
        self.projects: ScopedRepository[Project] = ScopedRepository(session, Project, owner_id, "Project")
        self.patients: ScopedRepository[Patient] = ScopedRepository(session, Patient, owner_id, "Patient")
        self.billing: ScopedRepository[BillingAccount] = ScopedRepository(
            session, BillingAccount, owner_id, "Billing account"
        )
