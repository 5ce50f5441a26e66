"""Participant directory collaborator: display names for users and topics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class ParticipantDirectory(Protocol):
    """Supplies names owned by the account and catalog services."""

    def display_name(self, user_id: int) -> str | None:
        """Return the user's display name, if known."""

    def topic_name(self, topic_id: int) -> str | None:
        """Return the listing/order title for a topic, if known."""


@dataclass(slots=True)
class StaticDirectory:
    """Directory backed by in-memory lookups supplied by the host."""

    users: dict[int, str] = field(default_factory=dict)
    topics: dict[int, str] = field(default_factory=dict)

    def display_name(self, user_id: int) -> str | None:
        return self.users.get(user_id)

    def topic_name(self, topic_id: int) -> str | None:
        return self.topics.get(topic_id)


def resolve_display_name(directory: ParticipantDirectory, user_id: int) -> str:
    """Directory name, or ``"User <id>"`` when the directory has none."""

    name = directory.display_name(user_id)
    return name if name else f"User {user_id}"
