"""Contract of the remote Activity Authority, the system of record."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from .models import ActivityDraft, ActivityRecord


@dataclass(frozen=True)
class CallerIdentity:
    """Who is acting. Supplied by the authentication layer, never derived here.

    ``elevated`` is the only capability the core looks at: an elevated caller
    sees and may delete every user's records.
    """
    user_id: str
    elevated: bool = False


@dataclass(frozen=True)
class CreateResult:
    record: ActivityRecord
    created: bool


class ActivityAuthority(ABC):
    """Authority operations, each scoped to the current caller.

    Implementations raise ``AuthorityUnavailableError`` for transient
    failures, ``ValidationError`` for rejected input, ``NotFoundError`` and
    ``ForbiddenError`` from ``remove``.
    """

    @abstractmethod
    def create(self, draft: ActivityDraft) -> CreateResult:
        """Store a completion, idempotent per (kind, owner ref, day key).

        A repeated create for the same logical fact returns the existing
        record with ``created=False``.
        """

    @abstractmethod
    def list(self) -> List[ActivityRecord]:
        """Records visible to the caller, newest completion first, capped."""

    @abstractmethod
    def remove(self, activity_id: str) -> None:
        """Delete a record by canonical identity."""
