"""Actor identity passed from the HTTP boundary into domain services."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a domain operation.

    Attributes:
        user_id: Identifier of the authenticated user, as a string.
        is_admin: True when the user holds the administrator role.
    """

    user_id: str
    is_admin: bool = False

    @property
    def role(self) -> str:
        return "admin" if self.is_admin else "user"

    def can_access(self, owner_id: str) -> bool:
        """Return True if the actor owns the resource or is an administrator."""
        return self.is_admin or self.user_id == str(owner_id)


def actor_from_request(request) -> Actor:
    """Build an ``Actor`` from an authenticated DRF request.

    The administrator role maps to Django's staff flag; no other check
    (emails, usernames) grants admin rights.
    """
    user = request.user
    return Actor(user_id=str(user.pk), is_admin=bool(user.is_staff))
