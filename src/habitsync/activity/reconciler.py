"""Merge local and remote activity records into one consistent view."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .authority import ActivityAuthority
from .models import ActivityKind, ActivityRecord, IdentityKey
from .store import ActivityRecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayGroup:
    day_key: str
    items: Tuple[ActivityRecord, ...]

    def __len__(self) -> int:
        return len(self.items)


class MergedView(Mapping[IdentityKey, ActivityRecord]):
    """Read-only mapping from identity key to the record chosen for it.

    Iteration follows presentation order: newest completion first, ties in
    insertion order (remote records before local ones).
    """

    def __init__(self, by_key: Dict[IdentityKey, ActivityRecord], remote_available: bool = True):
        self._by_key = dict(by_key)
        self._ordered = sorted(self._by_key.values(), key=lambda r: r.completed_at, reverse=True)
        self.remote_available = remote_available

    def __getitem__(self, key: IdentityKey) -> ActivityRecord:
        return self._by_key[key]

    def __iter__(self):
        return iter([record.identity_key for record in self._ordered])

    def __len__(self) -> int:
        return len(self._by_key)

    @property
    def records(self) -> List[ActivityRecord]:
        return list(self._ordered)

    def day_keys(self) -> set:
        return {record.day_key for record in self._by_key.values()}

    def for_day(self, day: str) -> List[ActivityRecord]:
        return [r for r in self._ordered if r.day_key == day]

    def for_owner(self, kind: str, owner_ref_id: str) -> List[ActivityRecord]:
        return [r for r in self._ordered if r.belongs_to(kind, owner_ref_id)]

    def group_by_day(self) -> List[DayGroup]:
        """Timeline groups derived from the merged records, newest day first."""
        groups: Dict[str, List[ActivityRecord]] = {}
        for record in self._ordered:
            groups.setdefault(record.day_key, []).append(record)
        return [DayGroup(day, tuple(groups[day])) for day in sorted(groups, reverse=True)]

    def summary(self) -> Dict[str, int]:
        counts = {"total": len(self), "goals": 0, "routines": 0, "local": 0}
        for record in self._by_key.values():
            if record.kind == ActivityKind.GOAL.value:
                counts["goals"] += 1
            elif record.kind == ActivityKind.ROUTINE.value:
                counts["routines"] += 1
            if record.is_placeholder:
                counts["local"] += 1
        return counts


def merge(local_records: Iterable[ActivityRecord], remote_records: Iterable[ActivityRecord],
          remote_available: bool = True) -> MergedView:
    """Remote records are authoritative; local records only fill gaps."""
    by_key: Dict[IdentityKey, ActivityRecord] = {}
    for record in remote_records:
        by_key.setdefault(record.identity_key, record)
    for record in local_records:
        if record.identity_key not in by_key:
            by_key[record.identity_key] = record
    return MergedView(by_key, remote_available=remote_available)


def fetch_remote(authority: Optional[ActivityAuthority]) -> Optional[List[ActivityRecord]]:
    """Remote records, or None when the Authority cannot be reached."""
    if authority is None:
        return None
    try:
        return authority.list()
    except Exception as e:
        logger.warning(f"Failed to fetch activities from authority, using local only: {e}")
        return None


def load_merged_view(store: ActivityRecordStore, authority: Optional[ActivityAuthority]) -> MergedView:
    """Merged view for the read path. Remote unavailability degrades to local-only."""
    remote = fetch_remote(authority)
    return merge(store.load(), remote or [], remote_available=remote is not None)
