"""Bearer token authentication."""

from guroute.auth.tokens import SERVICE_ROLE, Principal, create_access_token, verify_token

__all__ = ["SERVICE_ROLE", "Principal", "create_access_token", "verify_token"]
