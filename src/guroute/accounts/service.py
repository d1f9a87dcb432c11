"""Profile lookups and premium status."""

from datetime import datetime

from sqlalchemy.orm import Session

from guroute.accounts.models import Profile
from guroute.logging_config import get_logger
from guroute.storage.db import Database, db

logger = get_logger(__name__)


def get_or_create_profile(
    session: Session,
    user_id: str,
    display_name: str | None = None,
    email: str | None = None,
) -> Profile:
    """Fetch a profile inside an existing session, creating it when missing."""
    profile = session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, display_name=display_name, email=email)
        session.add(profile)
        session.flush()
        logger.info("profile_created", user_id=user_id)
    return profile


class ProfileService:
    """Service for profile records and the premium flag."""

    def __init__(self, database: Database | None = None):
        self.db = database or db

    def get_profile(self, user_id: str) -> Profile | None:
        with self.db.session() as session:
            return session.get(Profile, user_id)

    def get_or_create_profile(
        self,
        user_id: str,
        display_name: str | None = None,
        email: str | None = None,
    ) -> Profile:
        with self.db.session() as session:
            return get_or_create_profile(session, user_id, display_name, email)

    def is_premium(self, user_id: str, now: datetime | None = None) -> bool:
        """Check whether a user currently has an active premium subscription.

        Args:
            user_id: User ID
            now: Reference time (defaults to current UTC time)

        Returns:
            True if premium and not expired
        """
        with self.db.session() as session:
            profile = session.get(Profile, user_id)
            return profile is not None and profile.premium_active(now)

    def set_premium(
        self,
        user_id: str,
        active: bool,
        expires_at: datetime | None = None,
    ) -> Profile:
        """Set or clear premium status.

        Args:
            user_id: User ID
            active: Whether the subscription is active
            expires_at: Subscription end (None = no expiry)

        Returns:
            Updated profile
        """
        with self.db.session() as session:
            profile = get_or_create_profile(session, user_id)
            profile.is_premium = active
            profile.premium_expires_at = expires_at if active else None
            profile.updated_at = datetime.utcnow()

            logger.info(
                "premium_status_updated",
                user_id=user_id,
                active=active,
                expires_at=expires_at.isoformat() if expires_at else None,
            )
            return profile
