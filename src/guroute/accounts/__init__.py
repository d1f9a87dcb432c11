"""User profiles and premium status."""

from guroute.accounts.models import Profile
from guroute.accounts.service import ProfileService

__all__ = ["Profile", "ProfileService"]
