"""
streakbot.errors — Error Taxonomy
==================================

Every failure the core knows how to name.  Storage errors are absorbed as
low as possible (repair, skip, default); only :class:`ValidationError`
from administrative operations is meant to reach an end user.
"""

from __future__ import annotations


class StreakbotError(Exception):
    """Base class for all streakbot errors."""


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
class NotFound(StreakbotError):
    """Something the caller asked for does not exist."""


class DocumentNotFound(NotFound):
    """A tenant document is missing on disk.

    Recovered inside :meth:`DocumentStore.load` by initializing an empty
    document.
    """

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


class MemberNotFound(NotFound):
    """The chat platform has no member with this id in the tenant."""

    def __init__(self, tenant_id: str, user_id: str) -> None:
        super().__init__(f"Member {user_id} not found in tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
class CorruptData(StreakbotError):
    """A stored document could not be parsed as-is."""


class InvalidState(StreakbotError):
    """A document was empty or incomplete where content was required."""


# ---------------------------------------------------------------------------
# Collaborator calls
# ---------------------------------------------------------------------------
class ExternalCallFailure(StreakbotError):
    """A role or message operation against the chat platform failed."""


class DmBlocked(ExternalCallFailure):
    """The recipient has disabled direct messages (or blocked the bot)."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} does not accept direct messages")
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Administrative input
# ---------------------------------------------------------------------------
class ValidationError(StreakbotError):
    """An administrative edit was rejected before any mutation happened."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message
