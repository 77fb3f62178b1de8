"""
MathMentor Scheduling Backend — Profile SQLAlchemy Model
==========================================================

What:  Read model of the identity collaborator's `profiles` table.
Why:   The scheduling core only needs to answer "does this student/tutor
       exist". Profiles are written by the auth service, never by this one.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.enums import UserRole, status_column


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role: Mapped[UserRole] = mapped_column(status_column(UserRole, "user_role"), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, role='{self.role}')>"
