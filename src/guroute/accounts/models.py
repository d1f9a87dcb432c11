"""Profile model.

Profiles are keyed by the Apple Sign-In user identifier, which is an opaque
string such as ``000304.e1eaef650c6b...``.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from guroute.storage.models import Base


class Profile(Base):
    """Public profile of an app user."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Premium subscription
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)  # NULL = no expiry

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def premium_active(self, now: datetime | None = None) -> bool:
        """Whether the premium flag is set and not yet expired."""
        if not self.is_premium:
            return False
        if self.premium_expires_at is None:
            return True
        return self.premium_expires_at > (now or datetime.utcnow())

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, premium={self.is_premium})>"
