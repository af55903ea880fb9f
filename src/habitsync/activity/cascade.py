"""Remove activity history when its owner goes away."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .authority import ActivityAuthority
from .exceptions import ForbiddenError
from .models import ActivityRecord, kind_value
from .progress import ProgressReporter, SilentReporter
from .store import ActivityRecordStore
from .tasks import DeferredTaskQueue

logger = logging.getLogger(__name__)


@dataclass
class RemoteCleanup:
    deleted: int = 0
    failed: int = 0
    forbidden: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class CascadeResult:
    removed_local: int = 0
    removed_remote: int = 0
    remote_failures: int = 0
    forbidden: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'removed_local': self.removed_local,
            'removed_remote': self.removed_remote,
            'remote_failures': self.remote_failures,
            'forbidden': self.forbidden,
        }


@dataclass
class ClearResult:
    cleared_local: int = 0
    deleted: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {'cleared_local': self.cleared_local, 'deleted': self.deleted, 'failed': self.failed}


class CascadeCoordinator:
    """Local removal is guaranteed; remote removal is best-effort and only counted."""

    def __init__(self, store: ActivityRecordStore, authority: Optional[ActivityAuthority],
                 task_queue: Optional[DeferredTaskQueue] = None,
                 progress_reporter: Optional[ProgressReporter] = None):
        self.store = store
        self.authority = authority
        self.task_queue = task_queue or DeferredTaskQueue()
        self.progress = progress_reporter or SilentReporter(name="activity cleanup")

    async def cascade_delete(self, owner_kind: str, owner_ref_id: str) -> CascadeResult:
        """Delete all activity tied to an owner, locally first, then remotely."""
        result = CascadeResult(removed_local=self.remove_local(owner_kind, owner_ref_id))
        cleanup = await self._remote_owner_cleanup(owner_kind, owner_ref_id)
        return self._combine(result, cleanup)

    async def cascade_delete_deferred(self, owner_kind: str, owner_ref_id: str) -> Tuple[int, asyncio.Task]:
        """Remove local records now and queue the remote cleanup.

        Returns the local count and a task resolving to the full
        ``CascadeResult``; awaiting it is optional.
        """
        removed_local = self.remove_local(owner_kind, owner_ref_id)

        async def remote_step() -> CascadeResult:
            cleanup = await self._remote_owner_cleanup(owner_kind, owner_ref_id)
            return self._combine(CascadeResult(removed_local=removed_local), cleanup)

        task = self.task_queue.submit(remote_step(), name=f"cascade {kind_value(owner_kind)}/{owner_ref_id}")
        return removed_local, task

    def remove_local(self, owner_kind: str, owner_ref_id: str) -> int:
        removed = self.store.remove_owner(owner_kind, owner_ref_id)
        logger.info(f"Removed {removed} local activities for {kind_value(owner_kind)} {owner_ref_id}")
        return removed

    async def clear_history(self) -> ClearResult:
        """Clear the local store, then try to delete every remote record."""
        result = ClearResult(cleared_local=self.store.clear())
        cleanup = await self._remote_cleanup(lambda record: True, "clear history")
        result.deleted = cleanup.deleted
        result.failed = cleanup.failed
        result.errors = cleanup.errors
        return result

    @staticmethod
    def _combine(result: CascadeResult, cleanup: RemoteCleanup) -> CascadeResult:
        result.removed_remote = cleanup.deleted
        result.remote_failures = cleanup.failed
        result.forbidden = cleanup.forbidden
        result.errors = cleanup.errors
        return result

    async def _remote_owner_cleanup(self, owner_kind: str, owner_ref_id: str) -> RemoteCleanup:
        return await self._remote_cleanup(
            lambda record: record.belongs_to(owner_kind, owner_ref_id),
            f"cascade {kind_value(owner_kind)} {owner_ref_id}",
        )

    async def _remote_cleanup(self, predicate: Callable[[ActivityRecord], bool], description: str) -> RemoteCleanup:
        cleanup = RemoteCleanup()
        if self.authority is None:
            return cleanup

        try:
            remote = await asyncio.to_thread(self.authority.list)
        except Exception as e:
            # Nothing to count against; the remote side converges on a later pass
            logger.warning(f"Could not fetch remote activities for {description}: {e}")
            cleanup.errors.append(f"list: {e}")
            return cleanup

        matches = [record for record in remote if predicate(record)]
        self.progress.start_pass(len(matches), description)
        for record in matches:
            activity_id = str(record.id)
            self.progress.task_start(activity_id)
            try:
                await asyncio.to_thread(self.authority.remove, activity_id)
            except ForbiddenError as e:
                cleanup.failed += 1
                cleanup.forbidden += 1
                cleanup.errors.append(f"{activity_id}: {e}")
                self.progress.task_failed(activity_id, "forbidden")
            except Exception as e:
                cleanup.failed += 1
                cleanup.errors.append(f"{activity_id}: {e}")
                logger.warning(f"Failed to delete remote activity {activity_id}: {e}")
                self.progress.task_failed(activity_id, str(e))
            else:
                cleanup.deleted += 1
                self.progress.task_complete(activity_id)
        self.progress.end_pass(cleanup.failed == 0)
        return cleanup
