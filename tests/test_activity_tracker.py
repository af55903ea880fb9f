"""Tests for the activity tracker facade."""

import pytest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import Mock

from habitsync.activity.authority import CallerIdentity
from habitsync.activity.config import ActivityConfig
from habitsync.activity.exceptions import AuthorityUnavailableError, ForbiddenError, NotFoundError
from habitsync.activity.ledger import ActivityLedger
from habitsync.activity.models import ActivityKind, ActivityRecord
from habitsync.activity.store import ActivityRecordStore, MemoryKeyValueStore
from habitsync.activity.tracker import ActivityTracker, parse_identity


@pytest.fixture
def temp_dir():
    """Create temporary directory for test databases."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def ledger(temp_dir):
    """Create test ledger."""
    ledger = ActivityLedger(temp_dir / "ledger.db")
    yield ledger
    ledger.close()


@pytest.fixture
def config():
    return ActivityConfig(retry_delay=0.0, progress_reporter="silent")


@pytest.fixture
def tracker(ledger, config):
    """Create tracker for alice over the test ledger."""
    store = ActivityRecordStore(MemoryKeyValueStore())
    return ActivityTracker(store, ledger.for_caller(CallerIdentity("alice")), config)


class TestRecordCompletion:
    """Test marking goals and routines complete."""

    @pytest.mark.asyncio
    async def test_local_then_pushed(self, tracker, ledger):
        """Test that a completion is local at once and canonical after the push."""
        record = await tracker.record_completion(ActivityKind.GOAL, "g1", "Run 5k")
        assert record.is_placeholder
        assert tracker.store.get(record.id) is not None

        await tracker.drain()

        stored = tracker.store.load()
        assert len(stored) == 1
        assert not stored[0].is_placeholder
        assert ledger.count() == 1

    @pytest.mark.asyncio
    async def test_offline_stays_pending(self, config):
        """Test that an unreachable Authority leaves the record for the next sync."""
        authority = Mock()
        authority.create.side_effect = AuthorityUnavailableError("offline")
        authority.list.side_effect = AuthorityUnavailableError("offline")
        tracker = ActivityTracker(ActivityRecordStore(MemoryKeyValueStore()), authority, config)

        await tracker.record_completion("routine", "r1", "Stretch")
        await tracker.drain()

        assert len(tracker.store.pending()) == 1
        dashboard = tracker.dashboard()
        assert dashboard['routines_today'] == 1
        assert dashboard['streak'] == 1
        assert not dashboard['remote_available']

    @pytest.mark.asyncio
    async def test_sync_pending(self, tracker, ledger):
        """Test an explicit sync pass through the tracker."""
        tracker.store.add(ActivityRecord.new_local("goal", "g1", "Run"))
        result = await tracker.sync_pending()
        assert result.pushed == 1
        assert ledger.count() == 1


class TestTrackerReads:
    """Test dashboard, summary and counts."""

    @pytest.mark.asyncio
    async def test_dashboard(self, tracker):
        """Test today's counts and streak."""
        await tracker.record_completion("goal", "g1", "Run")
        await tracker.record_completion("goal", "g2", "Read")
        await tracker.record_completion("routine", "r1", "Stretch")
        await tracker.drain()

        dashboard = tracker.dashboard()
        assert dashboard['goals_today'] == 2
        assert dashboard['routines_today'] == 1
        assert dashboard['streak'] == 1
        assert dashboard['summary']['local'] == 0
        assert dashboard['remote_available']

    @pytest.mark.asyncio
    async def test_completion_count_and_timeline(self, tracker):
        """Test per-owner counts and timeline grouping."""
        await tracker.record_completion("routine", "r1", "Stretch")
        await tracker.record_completion("routine", "r1", "Stretch again")
        await tracker.drain()

        assert tracker.completion_count("routine", "r1") == 1
        assert len(tracker.timeline()) == 1
        assert tracker.summary()['routines'] == 1


class TestTrackerDeletes:
    """Test delete operations."""

    @pytest.mark.asyncio
    async def test_delete_owner(self, tracker, ledger):
        """Test cascade through the tracker."""
        await tracker.record_completion("goal", "g1", "Run")
        await tracker.drain()

        result = await tracker.delete_owner("goal", "g1")

        assert result.removed_local == 1
        assert result.removed_remote == 1
        assert ledger.count() == 0

    @pytest.mark.asyncio
    async def test_clear_history(self, tracker, ledger):
        """Test clearing all history through the tracker."""
        await tracker.record_completion("goal", "g1", "Run")
        await tracker.record_completion("routine", "r1", "Stretch")
        await tracker.drain()

        result = await tracker.clear_history()

        assert result.cleared_local == 2
        assert result.deleted == 2
        assert tracker.merged_view().records == []

    @pytest.mark.asyncio
    async def test_delete_activity(self, tracker, ledger):
        """Test deleting a single canonical activity."""
        await tracker.record_completion("goal", "g1", "Run")
        await tracker.drain()
        activity_id = str(tracker.store.load()[0].id)

        assert tracker.delete_activity(activity_id)
        assert tracker.store.load() == []
        assert ledger.count() == 0

        with pytest.raises(NotFoundError):
            tracker.delete_activity(activity_id)

    @pytest.mark.asyncio
    async def test_delete_foreign_activity(self, tracker, ledger):
        """Test that another user's activity raises ForbiddenError."""
        bob = ledger.for_caller(CallerIdentity("bob"))
        record = bob.create(ActivityRecord.new_local("goal", "g1", "Run").to_draft()).record

        with pytest.raises(ForbiddenError):
            tracker.delete_activity(record.id.value)
        assert ledger.count() == 1

    def test_delete_placeholder_is_local(self, tracker):
        """Test that placeholders are deleted locally only."""
        record = tracker.store.add(ActivityRecord.new_local("goal", "g1", "Run"))

        assert tracker.delete_activity(str(record.id))
        assert tracker.store.load() == []

    def test_parse_identity(self):
        """Test parsing printed ids."""
        assert parse_identity("local:abc").is_placeholder
        assert parse_identity("a_123").is_placeholder
        assert not parse_identity("65f0").is_placeholder
        with pytest.raises(ValueError):
            parse_identity("local:")


class TestFromConfig:
    """Test building a tracker from configuration."""

    def test_ledger_backed(self, temp_dir):
        """Test that without an Authority URL the local ledger is used."""
        config = ActivityConfig(store_path=str(temp_dir / "activity.db"), ledger_path=str(temp_dir / "ledger.db"))
        with ActivityTracker.from_config(config, caller=CallerIdentity("alice")) as tracker:
            assert tracker.authority.caller.user_id == "alice"
            assert tracker.merged_view().records == []
        assert (temp_dir / "ledger.db").exists()

    def test_http_backed(self, temp_dir):
        """Test that an Authority URL selects the HTTP client."""
        config = ActivityConfig(store_path=str(temp_dir / "activity.db"), authority_url="https://api.example.com")
        with ActivityTracker.from_config(config, token_provider=lambda: "tok") as tracker:
            assert tracker.authority.base_url == "https://api.example.com"
