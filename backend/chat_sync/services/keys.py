"""Participant keys, client-generated remote ids and preview text."""

import uuid

PREVIEW_LENGTH = 50
PREVIEW_ELLIPSIS = "..."


def canonical_pair(first_user_id: int, second_user_id: int) -> tuple[int, int]:
    """Return the pair ordered so the smaller id comes first."""

    return min(first_user_id, second_user_id), max(first_user_id, second_user_id)


def participant_key(first_user_id: int, second_user_id: int) -> str:
    """Order-independent key for a participant pair, e.g. ``"5_9"``."""

    low, high = canonical_pair(first_user_id, second_user_id)
    return f"{low}_{high}"


def new_remote_id() -> str:
    """Random globally unique id assigned before a record is first persisted."""

    return str(uuid.uuid4())


def message_preview(body: str) -> str:
    """Conversation list preview: bodies over 50 characters are cut and suffixed."""

    if len(body) <= PREVIEW_LENGTH:
        return body
    return body[:PREVIEW_LENGTH] + PREVIEW_ELLIPSIS
