"""Push locally recorded completions to the Authority."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .authority import ActivityAuthority
from .config import ActivityConfig
from .exceptions import StoreError, is_permanent_rejection
from .models import ActivityRecord
from .progress import ProgressReporter, create_reporter
from .store import ActivityRecordStore


class PushOutcome(Enum):
    PUSHED = "pushed"
    DEFERRED = "deferred"
    REJECTED = "rejected"
    GONE = "gone"


@dataclass
class SyncResult:
    pushed: int = 0
    failed: int = 0
    rejected: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {'pushed': self.pushed, 'failed': self.failed, 'rejected': self.rejected, 'errors': list(self.errors)}


class SyncAgent:
    """Promotes placeholder records to canonical ones.

    Each pass works on the placeholders present when it starts. A push that
    fails transiently is retried a bounded number of times and then left for
    the next pass; a permanent rejection removes the placeholder. Passes do
    not overlap: a second caller waits for the running pass and then runs
    its own.
    """

    def __init__(self,
                 store: ActivityRecordStore,
                 authority: ActivityAuthority,
                 config: Optional[ActivityConfig] = None,
                 progress_reporter: Optional[ProgressReporter] = None):
        """Initialize sync agent.

        Args:
            store: Local record store
            authority: Authority scoped to the current caller
            config: Retry and reporting settings (default: ActivityConfig())
            progress_reporter: Custom progress reporter (optional)
        """
        self.store = store
        self.authority = authority
        self.config = config if config is not None else ActivityConfig()
        self.logger = logging.getLogger(__name__)
        self.progress = progress_reporter or create_reporter(
            self.config.progress_reporter, name="activity sync", logger=self.logger
        )
        self._pass_lock = asyncio.Lock()

    async def sync_pending(self) -> SyncResult:
        """Push every placeholder record once; returns pushed/failed counts."""
        async with self._pass_lock:
            candidates = self.store.pending()
            result = SyncResult()
            if not candidates:
                return result

            self.progress.start_pass(len(candidates), f"{len(candidates)} pending activities")
            for index, record in enumerate(candidates):
                task_name = f"{record.kind} {record.owner_ref_id or '-'} {record.day_key}"
                self.progress.task_start(task_name)

                outcome, error = await self._push_with_retry(record)
                if outcome is PushOutcome.PUSHED:
                    result.pushed += 1
                    self.progress.task_complete(task_name)
                elif outcome is PushOutcome.GONE:
                    self.progress.task_skipped(task_name, "no longer pending")
                else:
                    result.failed += 1
                    if outcome is PushOutcome.REJECTED:
                        result.rejected += 1
                    result.errors.append(f"{task_name}: {error}")
                    self.progress.task_failed(task_name, str(error))

                if self.config.rate_limit_delay and index < len(candidates) - 1:
                    await asyncio.sleep(self.config.rate_limit_delay)

            self.progress.end_pass(result.failed == 0)
            return result

    async def push(self, record: ActivityRecord) -> PushOutcome:
        """Push a single placeholder record, e.g. right after it was recorded."""
        outcome, _ = await self._push_with_retry(record)
        return outcome

    async def _push_with_retry(self, record: ActivityRecord):
        max_retries = self.config.max_retries
        for attempt in range(max_retries):
            try:
                created = await asyncio.to_thread(self.authority.create, record.to_draft())
            except Exception as e:
                if is_permanent_rejection(e):
                    self.logger.warning(f"Authority rejected {record.id}, dropping it: {e}")
                    self.store.remove(record.id)
                    return PushOutcome.REJECTED, e
                if attempt == max_retries - 1:
                    self.logger.warning(f"Push of {record.id} deferred after {max_retries} attempts: {e}")
                    return PushOutcome.DEFERRED, e
                wait_time = self.config.retry_delay * (self.config.retry_backoff ** attempt)
                self.logger.debug(f"Retry {attempt + 1}/{max_retries} for {record.id} in {wait_time}s: {e}")
                await asyncio.sleep(wait_time)
                continue

            canonical = created.record
            try:
                promoted = self.store.replace(record.id, canonical)
            except StoreError as e:
                # Created remotely; the next pass finds it idempotently
                self.logger.warning(f"Could not promote {record.id} locally: {e}")
                return PushOutcome.DEFERRED, e
            if promoted:
                if not created.created:
                    self.logger.debug(f"{record.id} matched existing record {canonical.id}")
                return PushOutcome.PUSHED, None

            # Removed locally (cleared, cascaded, or promoted by another push) while in flight
            if created.created and self.store.get(canonical.id) is None:
                await self._discard_orphan(canonical)
            return PushOutcome.GONE, None

        return PushOutcome.DEFERRED, None

    async def _discard_orphan(self, canonical: ActivityRecord):
        """Best-effort removal of a record created for a placeholder deleted meanwhile."""
        try:
            await asyncio.to_thread(self.authority.remove, canonical.id.value)
            self.logger.debug(f"Removed orphaned remote record {canonical.id}")
        except Exception as e:
            self.logger.warning(f"Could not remove orphaned remote record {canonical.id}: {e}")
