"""Activity record data model and identity handling."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Union

DAY_KEY_FORMAT = "%Y-%m-%d"
LEGACY_PLACEHOLDER_PREFIX = "a_"


class ActivityKind(str, Enum):
    """Known categories of completed things."""
    GOAL = "goal"
    ROUTINE = "routine"


def kind_value(kind: Union[str, ActivityKind]) -> str:
    """Plain string form of a kind; unknown kinds pass through."""
    return kind.value if isinstance(kind, Enum) else str(kind)


@dataclass(frozen=True)
class CanonicalId:
    """Identity issued by the Authority."""
    value: str

    @property
    def is_placeholder(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PlaceholderId:
    """Identity issued locally for a record the Authority has not confirmed yet."""
    local_seq: str

    DISPLAY_PREFIX = "local:"

    @classmethod
    def new(cls) -> "PlaceholderId":
        return cls(uuid.uuid4().hex)

    @property
    def is_placeholder(self) -> bool:
        return True

    @classmethod
    def parse(cls, text: str) -> "PlaceholderId":
        """Inverse of str(): accepts only the ``local:<seq>`` display form."""
        if not text.startswith(cls.DISPLAY_PREFIX) or len(text) == len(cls.DISPLAY_PREFIX):
            raise ValueError(f"Not a placeholder id: {text!r}")
        return cls(text[len(cls.DISPLAY_PREFIX):])

    def __str__(self) -> str:
        return f"{self.DISPLAY_PREFIX}{self.local_seq}"


Identity = Union[CanonicalId, PlaceholderId]


class IdentityKey(NamedTuple):
    """Deduplication key: one logical completion per owner per day."""
    kind: str
    owner_ref_id: str
    day_key: str


def utc_datetime(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_key(value: Union[datetime, date, str, None] = None) -> str:
    """Canonical calendar-day bucket (UTC, YYYY-MM-DD).

    Accepts a datetime, a date (used as-is), an existing day key string
    (validated and returned), or None for the current UTC day.
    """
    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return utc_datetime(value).strftime(DAY_KEY_FORMAT)
    if isinstance(value, date):
        return value.strftime(DAY_KEY_FORMAT)
    if isinstance(value, str):
        return parse_day_key(value).strftime(DAY_KEY_FORMAT)
    raise ValueError(f"Cannot derive day key from {type(value)}")


def parse_day_key(value: str) -> date:
    """Parse a YYYY-MM-DD day key."""
    try:
        return datetime.strptime(value, DAY_KEY_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid day key {value!r}: {e}") from e


def parse_timestamp(value: Union[str, datetime, int, float]) -> datetime:
    """Parse an ISO-8601 string, datetime, or epoch milliseconds into aware UTC."""
    if isinstance(value, datetime):
        return utc_datetime(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return utc_datetime(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp type: {type(value)}")


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return utc_datetime(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def identity_to_json(identity: Identity) -> Dict[str, str]:
    if isinstance(identity, PlaceholderId):
        return {"placeholder": identity.local_seq}
    return {"canonical": identity.value}


def identity_from_json(raw: Any) -> Identity:
    """Decode an identity, accepting the tagged form and legacy bare strings."""
    if isinstance(raw, dict):
        if raw.get("placeholder"):
            return PlaceholderId(str(raw["placeholder"]))
        if raw.get("canonical"):
            return CanonicalId(str(raw["canonical"]))
    elif isinstance(raw, str) and raw:
        if raw.startswith(LEGACY_PLACEHOLDER_PREFIX):
            return PlaceholderId(raw[len(LEGACY_PLACEHOLDER_PREFIX):])
        return CanonicalId(raw)
    raise ValueError(f"Malformed identity: {raw!r}")


@dataclass(frozen=True)
class ActivityDraft:
    """Semantic fields of a completion, as sent to the Authority's create."""
    kind: str
    owner_ref_id: Optional[str]
    label: str
    completed_at: datetime
    day_key: str

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload for the Authority's create operation."""
        payload = {
            "type": self.kind,
            "title": self.label,
            "completedAt": format_timestamp(self.completed_at),
            "dateString": self.day_key,
        }
        if self.owner_ref_id is not None:
            payload["refId"] = self.owner_ref_id
        return payload


@dataclass(frozen=True)
class ActivityRecord:
    """A single completion fact, local or confirmed."""
    id: Identity
    kind: str
    owner_ref_id: Optional[str]
    label: str
    completed_at: datetime
    day_key: str
    user_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.kind:
            raise ValueError("ActivityRecord.kind cannot be empty")
        if not self.day_key:
            raise ValueError("ActivityRecord.day_key cannot be empty")
        parse_day_key(self.day_key)
        object.__setattr__(self, "kind", kind_value(self.kind))
        object.__setattr__(self, "completed_at", utc_datetime(self.completed_at))
        if self.owner_ref_id is not None:
            object.__setattr__(self, "owner_ref_id", str(self.owner_ref_id))

    @classmethod
    def new_local(cls, kind: Union[str, ActivityKind], owner_ref_id: Optional[str], label: str,
                  completed_at: Optional[datetime] = None) -> "ActivityRecord":
        """Create a placeholder record for a completion that just happened.

        The day key is fixed here, at creation, and never recomputed.
        """
        completed_at = utc_datetime(completed_at) if completed_at else datetime.now(timezone.utc)
        return cls(
            id=PlaceholderId.new(),
            kind=kind,
            owner_ref_id=owner_ref_id,
            label=label,
            completed_at=completed_at,
            day_key=day_key(completed_at),
        )

    @property
    def is_placeholder(self) -> bool:
        return self.id.is_placeholder

    @property
    def source(self) -> str:
        return "local" if self.is_placeholder else "server"

    @property
    def identity_key(self) -> IdentityKey:
        return IdentityKey(self.kind, self.owner_ref_id or "", self.day_key)

    def belongs_to(self, kind: str, owner_ref_id: str) -> bool:
        return self.kind == kind_value(kind) and (self.owner_ref_id or "") == str(owner_ref_id)

    def to_draft(self) -> ActivityDraft:
        return ActivityDraft(
            kind=self.kind,
            owner_ref_id=self.owner_ref_id,
            label=self.label,
            completed_at=self.completed_at,
            day_key=self.day_key,
        )

    def with_identity(self, identity: Identity) -> "ActivityRecord":
        return replace(self, id=identity)

    def to_dict(self) -> Dict[str, Any]:
        """Local-store representation."""
        data = {
            "id": identity_to_json(self.id),
            "type": self.kind,
            "refId": self.owner_ref_id,
            "title": self.label,
            "completedAt": format_timestamp(self.completed_at),
            "dateString": self.day_key,
        }
        if self.user_id is not None:
            data["user"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityRecord":
        """Decode a local-store entry.

        The stored day key is kept; it is derived from the timestamp only
        when an old entry has none.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping, got {type(data)}")
        raw_id = data.get("id", data.get("_id"))
        completed_at = parse_timestamp(data["completedAt"])
        ref_id = data.get("refId")
        return cls(
            id=identity_from_json(raw_id),
            kind=data["type"],
            owner_ref_id=str(ref_id) if ref_id not in (None, "") else None,
            label=data.get("title") or "",
            completed_at=completed_at,
            day_key=data.get("dateString") or day_key(completed_at),
            user_id=data.get("user"),
        )

    @classmethod
    def from_remote(cls, data: Dict[str, Any]) -> "ActivityRecord":
        """Decode an Authority response document."""
        raw_id = data.get("_id", data.get("id"))
        if not raw_id:
            raise ValueError("Remote record has no id")
        return cls.from_dict({**data, "id": {"canonical": str(raw_id)}})
