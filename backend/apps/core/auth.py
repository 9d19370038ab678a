"""
Authentication context for request lifecycle.

Provides a typed container for authentication state that the auth
middleware populates and billing endpoints consume.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ninja.errors import HttpError

if TYPE_CHECKING:
    from apps.accounts.models import Member, User
    from apps.organizations.models import Organization


@dataclass
class AuthContext:
    """
    Authentication context attached to requests by the auth middleware.

    Attributes:
        user: The authenticated User, or None if not authenticated
        member: The Member record linking user to organization, or None
        organization: The Organization the user is acting within, or None
    """

    user: "User | None" = None
    member: "Member | None" = None
    organization: "Organization | None" = None

    @property
    def is_authenticated(self) -> bool:
        """Check if the request carries an authenticated user."""
        return self.user is not None

    def require_user(self) -> "User":
        """
        Get the authenticated user or raise 401.

        Individual billing endpoints only need a user; the organization
        is optional for users on a personal plan.
        """
        if self.user is None:
            raise HttpError(401, "Not authenticated")
        return self.user

    def require_admin(self) -> tuple["User", "Member", "Organization"]:
        """
        Get authenticated context and verify an admin/owner role, or raise error.

        Raises:
            HttpError 401: If not authenticated within an organization
            HttpError 403: If the member is not an admin or owner
        """
        if self.user is None or self.member is None or self.organization is None:
            raise HttpError(401, "Not authenticated")
        if not self.member.is_admin:
            raise HttpError(403, "Admin access required")
        return self.user, self.member, self.organization
