"""Explicit authorization context for tenant-scoped queries.

Identities are provisioned and authenticated by an upstream gateway; the
portal only consumes the resulting role and client association. Every
query in the billing core receives an AuthContext instead of reading
session state.
"""

import enum
from dataclasses import dataclass

from src.core.errors import AccessDenied, ValidationFailed


class UserRole(str, enum.Enum):
    """Roles assigned by the user-provisioning service."""

    ADMIN = "ADMIN"
    CLIENT_USER = "CLIENT_USER"


@dataclass(frozen=True)
class AuthContext:
    """Caller identity as seen by the billing core.

    Attributes:
        role: ADMIN sees every client; CLIENT_USER only its own.
        client_id: Client a CLIENT_USER belongs to. Ignored for admins.
        user_id: External identity id, recorded on self-service tickets.
    """

    role: UserRole
    client_id: int | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        if self.role == UserRole.CLIENT_USER and self.client_id is None:
            raise ValidationFailed("Client users must be linked to a client")

    @classmethod
    def system(cls) -> "AuthContext":
        """Context used by scheduled jobs that act on every tenant."""
        return cls(role=UserRole.ADMIN, user_id="system")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def ensure_admin(self) -> None:
        """Raise AccessDenied unless the caller is an administrator."""
        if not self.is_admin:
            raise AccessDenied("Administrator access required")

    def ensure_client_access(self, client_id: int) -> None:
        """Raise AccessDenied if the caller may not read this client's data."""
        if not self.is_admin and client_id != self.client_id:
            raise AccessDenied("Access to this client is not allowed")

    def scoped_client_id(self, requested: int | None = None) -> int | None:
        """Resolve the client filter a query must apply.

        Admins get whatever they asked for (None means all clients).
        Client users are always pinned to their own client.
        """
        if self.is_admin:
            return requested
        if requested is not None and requested != self.client_id:
            raise AccessDenied("Access to this client is not allowed")
        return self.client_id
