"""Activity tracker: the operations the rest of the app calls."""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from .authority import ActivityAuthority, CallerIdentity
from .cascade import CascadeCoordinator, CascadeResult, ClearResult
from .config import ActivityConfig
from .exceptions import NotFoundError
from .ledger import ActivityLedger
from .models import (
    ActivityKind,
    ActivityRecord,
    CanonicalId,
    Identity,
    PlaceholderId,
    day_key,
    identity_from_json,
)
from .progress import create_reporter
from .reconciler import DayGroup, MergedView, load_merged_view
from .remote import HttpAuthority, TokenProvider
from .store import ActivityRecordStore, KeyValueStore, SQLiteKeyValueStore
from .streak import compute_streak
from .sync import SyncAgent, SyncResult
from .tasks import DeferredTaskQueue

logger = logging.getLogger(__name__)


def parse_identity(value: Union[str, Identity]) -> Identity:
    """Parse an id as printed by the CLI: ``local:<seq>`` or a canonical id."""
    if isinstance(value, (CanonicalId, PlaceholderId)):
        return value
    if value.startswith(PlaceholderId.DISPLAY_PREFIX):
        return PlaceholderId.parse(value)
    return identity_from_json(value)


class ActivityTracker:
    """Local-first activity tracking for one caller.

    Completions are written to the local store at once and pushed to the
    Authority in the background. Reads merge local and remote records and
    fall back to local data alone when the Authority cannot be reached.
    """

    def __init__(self, store: ActivityRecordStore, authority: Optional[ActivityAuthority],
                 config: Optional[ActivityConfig] = None,
                 task_queue: Optional[DeferredTaskQueue] = None):
        self.store = store
        self.authority = authority
        self.config = config if config is not None else ActivityConfig()
        self.task_queue = task_queue or DeferredTaskQueue()
        self.sync_agent = SyncAgent(store, authority, self.config) if authority is not None else None
        self.cascade = CascadeCoordinator(
            store, authority, task_queue=self.task_queue,
            progress_reporter=create_reporter(self.config.progress_reporter, name="activity cleanup",
                                              logger=logger),
        )
        self._resources: List[Any] = []

    @classmethod
    def from_config(cls, config: ActivityConfig, caller: Optional[CallerIdentity] = None,
                    token_provider: Optional[TokenProvider] = None,
                    backend: Optional[KeyValueStore] = None) -> "ActivityTracker":
        """Build a tracker from configuration.

        With ``authority_url`` set the Authority is reached over HTTP and the
        token provider authenticates the caller; otherwise a local ledger
        database acts as the Authority for ``caller``.
        """
        backend = backend or SQLiteKeyValueStore(config.store_file, timeout=config.store_timeout)
        store = ActivityRecordStore(backend, storage_key=config.storage_key)

        if config.authority_url:
            authority = HttpAuthority(config.authority_url, token_provider=token_provider,
                                      timeout=config.request_timeout)
            resources = [authority, backend]
        else:
            ledger = ActivityLedger(config.ledger_file, list_limit=config.list_limit)
            authority = ledger.for_caller(caller or CallerIdentity("local"))
            resources = [ledger, backend]

        tracker = cls(store, authority, config)
        tracker._resources.extend(resources)
        return tracker

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Release the store and Authority resources this tracker opened."""
        for resource in self._resources:
            resource.close()
        self._resources.clear()

    # Recording
    async def record_completion(self, kind: Union[str, ActivityKind], owner_ref_id: Optional[str], label: str,
                                completed_at: Optional[datetime] = None) -> ActivityRecord:
        """Record a completion locally and push it in the background.

        Returns the local placeholder record right away. The push is on
        ``task_queue``; if it fails the record stays pending for the next
        sync pass.
        """
        record = self.store.add(ActivityRecord.new_local(kind, owner_ref_id, label, completed_at))
        logger.info(f"Recorded {record.kind} '{record.label}' for {record.day_key}")
        if self.sync_agent is not None:
            self.task_queue.submit(self.sync_agent.push(record), name=f"push {record.id}")
        return record

    async def sync_pending(self) -> SyncResult:
        if self.sync_agent is None:
            return SyncResult()
        return await self.sync_agent.sync_pending()

    async def drain(self) -> None:
        """Wait for background pushes and cleanups to finish."""
        await self.task_queue.drain()

    # Reading
    def merged_view(self) -> MergedView:
        return load_merged_view(self.store, self.authority)

    def timeline(self) -> List[DayGroup]:
        return self.merged_view().group_by_day()

    def streak(self, today: Optional[Union[date, datetime, str]] = None) -> int:
        return compute_streak(self.merged_view(), today)

    def summary(self) -> Dict[str, int]:
        return self.merged_view().summary()

    def completion_count(self, kind: Union[str, ActivityKind], owner_ref_id: str) -> int:
        """How many distinct days an owner was completed on."""
        return len(self.merged_view().for_owner(kind, owner_ref_id))

    def dashboard(self, today: Optional[Union[date, datetime, str]] = None) -> Dict[str, Any]:
        view = self.merged_view()
        today_key = day_key(today)
        todays = view.for_day(today_key)
        return {
            'day_key': today_key,
            'today': todays,
            'goals_today': sum(1 for r in todays if r.kind == ActivityKind.GOAL.value),
            'routines_today': sum(1 for r in todays if r.kind == ActivityKind.ROUTINE.value),
            'streak': compute_streak(view, today_key),
            'summary': view.summary(),
            'remote_available': view.remote_available,
        }

    # Deleting
    async def delete_owner(self, kind: Union[str, ActivityKind], owner_ref_id: str) -> CascadeResult:
        return await self.cascade.cascade_delete(kind, owner_ref_id)

    async def delete_owner_deferred(self, kind: Union[str, ActivityKind], owner_ref_id: str) -> Tuple[int, Any]:
        return await self.cascade.cascade_delete_deferred(kind, owner_ref_id)

    async def clear_history(self) -> ClearResult:
        return await self.cascade.clear_history()

    def delete_activity(self, activity_id: Union[str, Identity]) -> bool:
        """Delete one activity on the Authority and drop any local copy.

        Placeholders only exist locally and are removed from the store.
        ``NotFoundError`` and ``ForbiddenError`` propagate so callers can
        tell them apart; the local copy is still dropped when the Authority
        no longer has the record.
        """
        identity = parse_identity(activity_id)
        if identity.is_placeholder or self.authority is None:
            return self.store.remove(identity)

        try:
            self.authority.remove(identity.value)
        except NotFoundError:
            self.store.remove(identity)
            raise
        self.store.remove(identity)
        return True
