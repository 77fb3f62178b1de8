"""
MathMentor Scheduling Backend — Identity Directory
====================================================

What:  Existence checks against the identity collaborator's profiles.
Why:   Bookings and classes reference students and tutors by id only. The
       core never creates or edits profiles; it only refuses to schedule
       against ids that do not exist.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import UserRole
from app.models.profile import Profile


class IdentityDirectory:
    """Stateless lookups over the `profiles` table."""

    async def role_of(self, db: AsyncSession, user_id: uuid.UUID) -> UserRole | None:
        result = await db.execute(select(Profile.role).where(Profile.id == user_id))
        return result.scalar_one_or_none()

    async def student_exists(self, db: AsyncSession, student_id: uuid.UUID) -> bool:
        return await self.role_of(db, student_id) == UserRole.STUDENT

    async def tutor_exists(self, db: AsyncSession, tutor_id: uuid.UUID) -> bool:
        return await self.role_of(db, tutor_id) == UserRole.TUTOR


identity_directory = IdentityDirectory()
