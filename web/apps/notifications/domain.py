"""Notification message and the port used to deliver it."""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class Notification:
    """A user-facing message handed to the notification collaborator.

    Attributes:
        recipient: User identifier the notification is addressed to.
        template: Template name understood by the notification service
            (e.g. ``order_cancelled``).
        data: Template variables; ``title`` and ``message`` are rendered
            by the caller when it owns the wording.
    """

    recipient: str
    template: str
    data: dict = field(default_factory=dict)


class NotifierPort(Protocol):
    """Port describing delivery of a single notification."""

    def send(self, notification: Notification) -> None:
        """Deliver the notification, raising on failure."""
        raise NotImplementedError()
