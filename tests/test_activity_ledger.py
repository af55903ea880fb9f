"""Tests for the SQLAlchemy-backed Authority ledger."""

import pytest
import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

from habitsync.activity.authority import CallerIdentity
from habitsync.activity.exceptions import ForbiddenError, NotFoundError, ValidationError
from habitsync.activity.ledger import ActivityLedger
from habitsync.activity.models import ActivityDraft


@pytest.fixture
def temp_dir():
    """Create temporary directory for test database."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def ledger(temp_dir):
    """Create test ledger."""
    ledger = ActivityLedger(temp_dir / "ledger.db")
    yield ledger
    ledger.close()


def make_draft(ref_id="g1", day=10, kind="goal", label="Run", hour=12):
    completed = datetime(2024, 3, day, hour, tzinfo=timezone.utc)
    return ActivityDraft(kind, ref_id, label, completed, completed.strftime("%Y-%m-%d"))


class TestLedgerCreate:
    """Test idempotent create."""

    def test_create_new(self, ledger):
        """Test creating a record issues a canonical id."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        result = authority.create(make_draft())

        assert result.created
        assert not result.record.is_placeholder
        assert result.record.user_id == "alice"
        assert result.record.day_key == "2024-03-10"
        assert ledger.count() == 1

    def test_create_is_idempotent(self, ledger):
        """Test that a repeated create returns the existing record."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        first = authority.create(make_draft(hour=8))
        second = authority.create(make_draft(hour=20, label="Run again"))

        assert not second.created
        assert second.record.id == first.record.id
        assert ledger.count() == 1

    def test_idempotent_without_owner(self, ledger):
        """Test that records without an owner are also deduplicated per day."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        first = authority.create(make_draft(ref_id=None))
        second = authority.create(make_draft(ref_id=None))

        assert second.record.id == first.record.id
        assert second.record.owner_ref_id is None

    def test_distinct_facts(self, ledger):
        """Test that other days, kinds and users create new records."""
        alice = ledger.for_caller(CallerIdentity("alice"))
        bob = ledger.for_caller(CallerIdentity("bob"))
        alice.create(make_draft())
        alice.create(make_draft(day=11))
        alice.create(make_draft(kind="routine"))
        bob.create(make_draft())

        assert ledger.count() == 4

    def test_missing_fields_rejected(self, ledger):
        """Test validation of required fields."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        with pytest.raises(ValidationError):
            authority.create(make_draft(label=""))

    def test_requires_caller(self, ledger):
        """Test that an anonymous caller is refused."""
        with pytest.raises(ValueError):
            ledger.for_caller(CallerIdentity(""))


class TestLedgerList:
    """Test scoped listing."""

    def test_scoped_to_caller(self, ledger):
        """Test that callers only see their own records, newest first."""
        alice = ledger.for_caller(CallerIdentity("alice"))
        alice.create(make_draft(day=10))
        alice.create(make_draft(day=12))
        ledger.for_caller(CallerIdentity("bob")).create(make_draft(day=11))

        records = alice.list()
        assert [r.day_key for r in records] == ["2024-03-12", "2024-03-10"]

    def test_elevated_sees_everyone(self, ledger):
        """Test that an elevated caller lists all users."""
        ledger.for_caller(CallerIdentity("alice")).create(make_draft())
        ledger.for_caller(CallerIdentity("bob")).create(make_draft())

        admin = ledger.for_caller(CallerIdentity("admin", elevated=True))
        assert {r.user_id for r in admin.list()} == {"alice", "bob"}

    def test_list_limit(self, temp_dir):
        """Test that listing is capped."""
        ledger = ActivityLedger(temp_dir / "capped.db", list_limit=3)
        authority = ledger.for_caller(CallerIdentity("alice"))
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        for offset in range(5):
            completed = start + timedelta(days=offset)
            authority.create(ActivityDraft("goal", "g1", "Run", completed, completed.strftime("%Y-%m-%d")))

        records = authority.list()
        assert len(records) == 3
        assert records[0].day_key == "2024-03-05"
        ledger.close()


class TestLedgerRemove:
    """Test owner-checked deletion."""

    def test_remove_own(self, ledger):
        """Test that an owner can delete."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        record = authority.create(make_draft()).record

        authority.remove(record.id.value)
        assert ledger.count() == 0

    def test_remove_missing(self, ledger):
        """Test that deleting an unknown id raises NotFoundError."""
        authority = ledger.for_caller(CallerIdentity("alice"))
        with pytest.raises(NotFoundError) as exc_info:
            authority.remove("deadbeef")
        assert exc_info.value.status_code == 404

    def test_remove_foreign_forbidden(self, ledger):
        """Test that deleting another user's record raises ForbiddenError."""
        record = ledger.for_caller(CallerIdentity("alice")).create(make_draft()).record
        bob = ledger.for_caller(CallerIdentity("bob"))

        with pytest.raises(ForbiddenError):
            bob.remove(record.id.value)
        assert ledger.count() == 1

    def test_elevated_may_remove_any(self, ledger):
        """Test that an elevated caller can delete any record."""
        record = ledger.for_caller(CallerIdentity("alice")).create(make_draft()).record
        ledger.for_caller(CallerIdentity("admin", elevated=True)).remove(record.id.value)
        assert ledger.count() == 0
