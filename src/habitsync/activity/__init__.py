"""Activity - local-first completion tracking synced with a remote Authority."""

from .authority import ActivityAuthority, CallerIdentity, CreateResult
from .config import ActivityConfig, ConfigManager
from .exceptions import ActivityError, AuthorityUnavailableError, ForbiddenError, NotFoundError, ValidationError
from .ledger import ActivityLedger
from .models import ActivityKind, ActivityRecord, CanonicalId, IdentityKey, PlaceholderId, day_key
from .reconciler import MergedView, merge
from .remote import HttpAuthority
from .store import ActivityRecordStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .streak import compute_streak
from .tracker import ActivityTracker

__all__ = [
    'ActivityTracker', 'ActivityConfig', 'ConfigManager',
    'ActivityAuthority', 'CallerIdentity', 'CreateResult', 'ActivityLedger', 'HttpAuthority',
    'ActivityKind', 'ActivityRecord', 'CanonicalId', 'PlaceholderId', 'IdentityKey', 'day_key',
    'ActivityRecordStore', 'MemoryKeyValueStore', 'SQLiteKeyValueStore',
    'MergedView', 'merge', 'compute_streak',
    'ActivityError', 'AuthorityUnavailableError', 'ForbiddenError', 'NotFoundError', 'ValidationError',
]
__version__ = '1.0.0'
