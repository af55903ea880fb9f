"""SQLAlchemy-backed Authority: the reference system of record for activities."""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .authority import ActivityAuthority, CallerIdentity, CreateResult
from .exceptions import ForbiddenError, NotFoundError, ValidationError, authority_operation
from .models import ActivityDraft, ActivityRecord, CanonicalId, kind_value, parse_day_key, utc_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_LIST_LIMIT = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ActivityRow(Base):
    __tablename__ = 'activities'
    id = Column(String(32), primary_key=True)
    user_id = Column(String(128), nullable=False)
    kind = Column(String(50), nullable=False)
    ref_id = Column(String(128), nullable=False, default="")  # "" when no owner
    title = Column(String(500), nullable=False)
    completed_at = Column(DateTime, nullable=False)  # naive UTC
    day_key = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'kind', 'ref_id', 'day_key', name='uq_activities_identity'),
        Index('idx_activities_day_key', 'day_key'),
        Index('idx_activities_ref_id', 'ref_id'),
    )

    def to_record(self) -> ActivityRecord:
        return ActivityRecord(
            id=CanonicalId(self.id),
            kind=self.kind,
            owner_ref_id=self.ref_id or None,
            label=self.title,
            completed_at=utc_datetime(self.completed_at),
            day_key=self.day_key,
            user_id=self.user_id,
        )


class ActivityLedger:
    """Manages the ledger database and hands out caller-scoped Authority views."""

    def __init__(self, db_url_or_path: Union[str, Path] = "sqlite:///ledger.db",
                 list_limit: int = DEFAULT_LIST_LIMIT, echo: bool = False):
        db_url = str(db_url_or_path)
        if "://" not in db_url:
            db_path = Path(db_url).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{db_path}"

        connect_args = {'check_same_thread': False} if db_url.startswith("sqlite") else {}
        self.engine = create_engine(db_url, connect_args=connect_args, echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.list_limit = list_limit
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        """Get database session with automatic commit/rollback."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def for_caller(self, caller: CallerIdentity) -> "LedgerAuthority":
        return LedgerAuthority(self, caller)

    def count(self) -> int:
        with self.get_session() as session:
            return session.query(ActivityRow).count()

    def close(self):
        self.engine.dispose()


class LedgerAuthority(ActivityAuthority):
    """Authority operations against the ledger on behalf of one caller."""

    def __init__(self, ledger: ActivityLedger, caller: CallerIdentity):
        if not caller or not caller.user_id:
            raise ValueError("LedgerAuthority requires a caller with a user_id")
        self.ledger = ledger
        self.caller = caller

    @staticmethod
    def _validate(draft: ActivityDraft) -> None:
        for field_name in ('kind', 'label', 'day_key'):
            if not getattr(draft, field_name, None):
                raise ValidationError("Missing required fields", field_name=field_name)
        try:
            parse_day_key(draft.day_key)
        except ValueError:
            raise ValidationError("Invalid day key", field_name='day_key', field_value=draft.day_key,
                                  expected_type='YYYY-MM-DD')

    def _find_existing(self, session: Session, kind: str, ref_id: str, day: str) -> Optional[ActivityRow]:
        return session.query(ActivityRow).filter(
            ActivityRow.user_id == self.caller.user_id,
            ActivityRow.kind == kind,
            ActivityRow.ref_id == ref_id,
            ActivityRow.day_key == day,
        ).first()

    @authority_operation("create", logger)
    def create(self, draft: ActivityDraft) -> CreateResult:
        self._validate(draft)
        kind = kind_value(draft.kind)
        ref_id = str(draft.owner_ref_id) if draft.owner_ref_id is not None else ""

        with self.ledger.get_session() as session:
            existing = self._find_existing(session, kind, ref_id, draft.day_key)
            if existing:
                logger.debug(f"Create for {kind}/{ref_id}/{draft.day_key} matched existing {existing.id}")
                return CreateResult(existing.to_record(), created=False)

            completed_at = utc_datetime(draft.completed_at) if draft.completed_at else datetime.now(timezone.utc)
            row = ActivityRow(
                id=uuid.uuid4().hex,
                user_id=self.caller.user_id,
                kind=kind,
                ref_id=ref_id,
                title=draft.label,
                completed_at=completed_at.replace(tzinfo=None),
                day_key=draft.day_key,
            )
            session.add(row)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                # A concurrent create for the same fact won the insert
                existing = self._find_existing(session, kind, ref_id, draft.day_key)
                if existing is None:
                    raise
                return CreateResult(existing.to_record(), created=False)
            return CreateResult(row.to_record(), created=True)

    @authority_operation("list", logger)
    def list(self) -> List[ActivityRecord]:
        with self.ledger.get_session() as session:
            query = session.query(ActivityRow)
            if not self.caller.elevated:
                query = query.filter(ActivityRow.user_id == self.caller.user_id)
            rows = query.order_by(ActivityRow.completed_at.desc()).limit(self.ledger.list_limit).all()
            return [row.to_record() for row in rows]

    @authority_operation("remove", logger)
    def remove(self, activity_id: str) -> None:
        with self.ledger.get_session() as session:
            row: Optional[ActivityRow] = session.get(ActivityRow, str(activity_id))
            if row is None:
                raise NotFoundError(str(activity_id), status_code=404)
            if row.user_id != self.caller.user_id and not self.caller.elevated:
                raise ForbiddenError(str(activity_id), user_id=self.caller.user_id, status_code=403)
            session.delete(row)
