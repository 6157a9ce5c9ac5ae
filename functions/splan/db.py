"""
Database abstraction for Postgres (via SQLAlchemy) and an in-memory
implementation used in development and tests.

Every query is scoped to the owning user: a row that belongs to someone
else is reported exactly like a missing row.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol, Type, TypeVar

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from splan.types import AI_CHAT_CONVERSATION, GoalStatus, SprintStatus, TaskStatus

R = TypeVar("R")


class DuplicateUserError(Exception):
    """Raised when a username or email is already registered."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    id: str
    username: str
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar": self.avatar,
            "created_at": self.created_at,
        }


@dataclass
class GoalRecord:
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    priority: str = "MEDIUM"
    status: str = GoalStatus.ACTIVE.value
    target_date: Optional[datetime] = None
    estimated_effort: Optional[str] = None
    actual_effort: Optional[str] = None
    progress: float = 0.0
    scope_document: Optional[str] = None
    ai_confidence_score: Optional[float] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class SprintRecord:
    id: str
    user_id: str
    title: str
    start_date: datetime
    end_date: datetime
    description: Optional[str] = None
    goal_id: Optional[str] = None
    status: str = SprintStatus.PLANNED.value
    capacity: Optional[float] = None
    velocity: Optional[float] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class TaskRecord:
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    sprint_id: Optional[str] = None
    goal_id: Optional[str] = None
    status: str = TaskStatus.TODO.value
    priority: str = "MEDIUM"
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    progress: float = 0.0
    due_date: Optional[datetime] = None
    dependencies: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class TimeEntryRecord:
    id: str
    user_id: str
    task_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ConversationRecord:
    id: str
    user_id: str
    type: str = AI_CHAT_CONVERSATION
    context: Optional[str] = None
    summary: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=utcnow)


def apply_task_status(current: TaskRecord, changes: dict) -> dict:
    """Keep ``completed_at`` in step with a status change."""
    status = changes.get("status")
    if status is None:
        return changes
    changes = dict(changes)
    if status == TaskStatus.DONE.value and current.status != TaskStatus.DONE.value:
        changes["completed_at"] = utcnow()
    elif status != TaskStatus.DONE.value:
        changes["completed_at"] = None
    return changes


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def find_user(self, *, email: str, username: str) -> Optional[UserRecord]:
        ...

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        ...

    def create_goal(self, user_id: str, values: dict) -> GoalRecord:
        ...

    def get_goal(self, user_id: str, goal_id: str) -> Optional[GoalRecord]:
        ...

    def list_goals(
        self,
        user_id: str,
        filters: dict | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[GoalRecord], int]:
        ...

    def update_goal(
        self, user_id: str, goal_id: str, changes: dict
    ) -> Optional[GoalRecord]:
        ...

    def delete_goal(self, user_id: str, goal_id: str) -> bool:
        ...

    def create_sprint(self, user_id: str, values: dict) -> SprintRecord:
        ...

    def get_sprint(self, user_id: str, sprint_id: str) -> Optional[SprintRecord]:
        ...

    def list_sprints(
        self,
        user_id: str,
        filters: dict | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[SprintRecord], int]:
        ...

    def update_sprint(
        self, user_id: str, sprint_id: str, changes: dict
    ) -> Optional[SprintRecord]:
        ...

    def delete_sprint(self, user_id: str, sprint_id: str) -> bool:
        ...

    def create_task(self, user_id: str, values: dict) -> TaskRecord:
        ...

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        ...

    def list_tasks(
        self,
        user_id: str,
        filters: dict | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[TaskRecord], int]:
        ...

    def update_task(
        self, user_id: str, task_id: str, changes: dict
    ) -> Optional[TaskRecord]:
        ...

    def delete_task(self, user_id: str, task_id: str) -> bool:
        ...

    def create_time_entry(
        self, user_id: str, task_id: str, values: dict
    ) -> TimeEntryRecord:
        ...

    def list_time_entries(
        self, user_id: str, task_id: str | None = None
    ) -> list[TimeEntryRecord]:
        ...

    def create_conversation(
        self, user_id: str, context: str | None = None
    ) -> ConversationRecord:
        ...

    def get_conversation(
        self, user_id: str, conversation_id: str
    ) -> Optional[ConversationRecord]:
        ...

    def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        ...

    def add_messages(
        self, conversation_id: str, messages: Iterable[tuple[str, str]]
    ) -> list[MessageRecord]:
        ...

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        ...


def _matches(record: Any, filters: dict) -> bool:
    return all(getattr(record, key) == value for key, value in filters.items())


def _page(items: list[R], offset: int, limit: int | None) -> tuple[list[R], int]:
    total = len(items)
    end = None if limit is None else offset + limit
    return items[offset:end], total


def _clean_filters(filters: dict | None) -> dict:
    return {k: v for k, v in (filters or {}).items() if v is not None}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.goals: Dict[str, GoalRecord] = {}
        self.sprints: Dict[str, SprintRecord] = {}
        self.tasks: Dict[str, TaskRecord] = {}
        self.time_entries: Dict[str, TimeEntryRecord] = {}
        self.conversations: Dict[str, ConversationRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.goals.clear()
            self.sprints.clear()
            self.tasks.clear()
            self.time_entries.clear()
            self.conversations.clear()
            self.messages.clear()

    # Users

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        with self._lock:
            if self.find_user(email=email, username=username):
                raise DuplicateUserError(email)
            record = UserRecord(
                id=_new_id(),
                username=username,
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
            )
            self.users[record.id] = record
            return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def find_user(self, *, email: str, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email or user.username == username:
                return user
        return None

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return None
            self._apply(user, changes)
            return user

    # Generic helpers

    def _apply(self, record: Any, changes: dict) -> None:
        for key, value in changes.items():
            setattr(record, key, value)
        if hasattr(record, "updated_at"):
            record.updated_at = utcnow()

    def _owned(self, store: dict, user_id: str, record_id: str):
        record = store.get(record_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    def _list(
        self,
        store: dict,
        user_id: str,
        filters: dict | None,
        offset: int,
        limit: int | None,
    ):
        wanted = _clean_filters(filters)
        # Newest first; reversing insertion order breaks created_at ties.
        items = [
            r
            for r in reversed(list(store.values()))
            if r.user_id == user_id and _matches(r, wanted)
        ]
        items.sort(key=lambda r: r.created_at, reverse=True)
        return _page(items, offset, limit)

    # Goals

    def create_goal(self, user_id: str, values: dict) -> GoalRecord:
        with self._lock:
            record = GoalRecord(id=_new_id(), user_id=user_id, **values)
            self.goals[record.id] = record
            return record

    def get_goal(self, user_id: str, goal_id: str) -> Optional[GoalRecord]:
        return self._owned(self.goals, user_id, goal_id)

    def list_goals(self, user_id, filters=None, offset=0, limit=None):
        return self._list(self.goals, user_id, filters, offset, limit)

    def update_goal(self, user_id, goal_id, changes):
        with self._lock:
            goal = self.get_goal(user_id, goal_id)
            if not goal:
                return None
            self._apply(goal, changes)
            return goal

    def delete_goal(self, user_id: str, goal_id: str) -> bool:
        with self._lock:
            if not self.get_goal(user_id, goal_id):
                return False
            del self.goals[goal_id]
            for item in list(self.sprints.values()) + list(self.tasks.values()):
                if item.goal_id == goal_id:
                    item.goal_id = None
            return True

    # Sprints

    def create_sprint(self, user_id: str, values: dict) -> SprintRecord:
        with self._lock:
            record = SprintRecord(id=_new_id(), user_id=user_id, **values)
            self.sprints[record.id] = record
            return record

    def get_sprint(self, user_id: str, sprint_id: str) -> Optional[SprintRecord]:
        return self._owned(self.sprints, user_id, sprint_id)

    def list_sprints(self, user_id, filters=None, offset=0, limit=None):
        return self._list(self.sprints, user_id, filters, offset, limit)

    def update_sprint(self, user_id, sprint_id, changes):
        with self._lock:
            sprint = self.get_sprint(user_id, sprint_id)
            if not sprint:
                return None
            self._apply(sprint, changes)
            return sprint

    def delete_sprint(self, user_id: str, sprint_id: str) -> bool:
        with self._lock:
            if not self.get_sprint(user_id, sprint_id):
                return False
            del self.sprints[sprint_id]
            for task in self.tasks.values():
                if task.sprint_id == sprint_id:
                    task.sprint_id = None
            return True

    # Tasks

    def create_task(self, user_id: str, values: dict) -> TaskRecord:
        with self._lock:
            record = TaskRecord(id=_new_id(), user_id=user_id, **values)
            if record.status == TaskStatus.DONE.value:
                record.completed_at = utcnow()
            self.tasks[record.id] = record
            return record

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        return self._owned(self.tasks, user_id, task_id)

    def list_tasks(self, user_id, filters=None, offset=0, limit=None):
        return self._list(self.tasks, user_id, filters, offset, limit)

    def update_task(self, user_id, task_id, changes):
        with self._lock:
            task = self.get_task(user_id, task_id)
            if not task:
                return None
            self._apply(task, apply_task_status(task, changes))
            return task

    def delete_task(self, user_id: str, task_id: str) -> bool:
        with self._lock:
            if not self.get_task(user_id, task_id):
                return False
            del self.tasks[task_id]
            for entry_id, entry in list(self.time_entries.items()):
                if entry.task_id == task_id:
                    del self.time_entries[entry_id]
            return True

    # Time entries

    def create_time_entry(self, user_id, task_id, values):
        with self._lock:
            record = TimeEntryRecord(
                id=_new_id(), user_id=user_id, task_id=task_id, **values
            )
            self.time_entries[record.id] = record
            return record

    def list_time_entries(self, user_id, task_id=None):
        return [
            e
            for e in self.time_entries.values()
            if e.user_id == user_id and (task_id is None or e.task_id == task_id)
        ]

    # Conversations

    def create_conversation(self, user_id, context=None):
        with self._lock:
            record = ConversationRecord(id=_new_id(), user_id=user_id, context=context)
            self.conversations[record.id] = record
            return record

    def get_conversation(self, user_id, conversation_id):
        return self._owned(self.conversations, user_id, conversation_id)

    def list_conversations(self, user_id):
        items = [
            c
            for c in reversed(list(self.conversations.values()))
            if c.user_id == user_id and c.type == AI_CHAT_CONVERSATION
        ]
        items.sort(key=lambda c: c.updated_at, reverse=True)
        return items

    def add_messages(self, conversation_id, messages):
        with self._lock:
            saved = []
            for role, content in messages:
                record = MessageRecord(
                    id=_new_id(),
                    conversation_id=conversation_id,
                    role=role,
                    content=content,
                )
                self.messages[record.id] = record
                saved.append(record)
            conversation = self.conversations.get(conversation_id)
            if conversation:
                conversation.updated_at = utcnow()
            return saved

    def list_messages(self, conversation_id):
        return [
            m for m in self.messages.values() if m.conversation_id == conversation_id
        ]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    avatar = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class GoalRow(Base):
    __tablename__ = "goals"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    priority = Column(String, nullable=False, default="MEDIUM")
    status = Column(String, nullable=False, default=GoalStatus.ACTIVE.value, index=True)
    target_date = Column(DateTime(timezone=True), nullable=True)
    estimated_effort = Column(String, nullable=True)
    actual_effort = Column(String, nullable=True)
    progress = Column(Float, nullable=False, default=0.0)
    scope_document = Column(Text, nullable=True)
    ai_confidence_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class SprintRow(Base):
    __tablename__ = "sprints"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    goal_id = Column(String, ForeignKey("goals.id"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=SprintStatus.PLANNED.value, index=True)
    capacity = Column(Float, nullable=True)
    velocity = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    sprint_id = Column(String, ForeignKey("sprints.id"), nullable=True, index=True)
    goal_id = Column(String, ForeignKey("goals.id"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=TaskStatus.TODO.value, index=True)
    priority = Column(String, nullable=False, default="MEDIUM")
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=True)
    progress = Column(Float, nullable=False, default=0.0)
    due_date = Column(DateTime(timezone=True), nullable=True)
    dependencies = Column(Text, nullable=True)
    tags = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class TimeEntryRow(Base):
    __tablename__ = "time_entries"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(String, ForeignKey("tasks.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ConversationRow(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default=AI_CHAT_CONVERSATION)
    context = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    conversation_id = Column(
        String, ForeignKey("conversations.id"), nullable=False, index=True
    )
    role = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    # Insertion sequence; created_at alone can tie within one request.
    seq = Column(Integer, nullable=False, default=0)


def _aware(value: Any) -> Any:
    # SQLite hands timezone-aware columns back naive.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: Any, record_cls: Type[R]) -> R:
    return record_cls(
        **{f.name: _aware(getattr(row, f.name)) for f in fields(record_cls)}
    )


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    # Users

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        now = utcnow()
        with self.Session() as session:
            row = UserRow(
                id=_new_id(),
                username=username,
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateUserError(email) from exc
            return _to_record(row, UserRecord)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return _to_record(row, UserRecord) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return _to_record(row, UserRecord) if row else None

    def find_user(self, *, email: str, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = (
                session.execute(
                    select(UserRow).where(
                        (UserRow.email == email) | (UserRow.username == username)
                    )
                )
                .scalars()
                .first()
            )
            return _to_record(row, UserRecord) if row else None

    def update_user(self, user_id: str, changes: dict) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            self._apply(row, changes)
            session.commit()
            return _to_record(row, UserRecord)

    # Generic helpers

    def _apply(self, row: Any, changes: dict) -> None:
        for key, value in changes.items():
            setattr(row, key, value)
        if hasattr(row, "updated_at"):
            row.updated_at = utcnow()

    def _create(self, row_cls, record_cls, user_id: str, values: dict):
        now = utcnow()
        with self.Session() as session:
            row = row_cls(
                id=_new_id(), user_id=user_id, created_at=now, updated_at=now, **values
            )
            session.add(row)
            session.commit()
            return _to_record(row, record_cls)

    def _get_owned_row(self, session: Session, row_cls, user_id: str, row_id: str):
        row = session.get(row_cls, row_id)
        if row is None or row.user_id != user_id:
            return None
        return row

    def _get(self, row_cls, record_cls, user_id: str, row_id: str):
        with self.Session() as session:
            row = self._get_owned_row(session, row_cls, user_id, row_id)
            return _to_record(row, record_cls) if row else None

    def _list(self, row_cls, record_cls, user_id, filters, offset, limit):
        wanted = _clean_filters(filters)
        with self.Session() as session:
            conditions = [row_cls.user_id == user_id]
            conditions += [getattr(row_cls, k) == v for k, v in wanted.items()]
            total = session.execute(
                select(func.count()).select_from(row_cls).where(*conditions)
            ).scalar_one()
            stmt = (
                select(row_cls)
                .where(*conditions)
                .order_by(row_cls.created_at.desc())
                .offset(offset)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [_to_record(row, record_cls) for row in rows], total

    def _update(self, row_cls, record_cls, user_id, row_id, changes):
        with self.Session() as session:
            row = self._get_owned_row(session, row_cls, user_id, row_id)
            if not row:
                return None
            if row_cls is TaskRow:
                changes = apply_task_status(_to_record(row, TaskRecord), changes)
            self._apply(row, changes)
            session.commit()
            return _to_record(row, record_cls)

    # Goals

    def create_goal(self, user_id: str, values: dict) -> GoalRecord:
        return self._create(GoalRow, GoalRecord, user_id, values)

    def get_goal(self, user_id: str, goal_id: str) -> Optional[GoalRecord]:
        return self._get(GoalRow, GoalRecord, user_id, goal_id)

    def list_goals(self, user_id, filters=None, offset=0, limit=None):
        return self._list(GoalRow, GoalRecord, user_id, filters, offset, limit)

    def update_goal(self, user_id, goal_id, changes):
        return self._update(GoalRow, GoalRecord, user_id, goal_id, changes)

    def delete_goal(self, user_id: str, goal_id: str) -> bool:
        with self.Session() as session:
            row = self._get_owned_row(session, GoalRow, user_id, goal_id)
            if not row:
                return False
            session.execute(
                update(SprintRow).where(SprintRow.goal_id == goal_id).values(goal_id=None)
            )
            session.execute(
                update(TaskRow).where(TaskRow.goal_id == goal_id).values(goal_id=None)
            )
            session.delete(row)
            session.commit()
            return True

    # Sprints

    def create_sprint(self, user_id: str, values: dict) -> SprintRecord:
        return self._create(SprintRow, SprintRecord, user_id, values)

    def get_sprint(self, user_id: str, sprint_id: str) -> Optional[SprintRecord]:
        return self._get(SprintRow, SprintRecord, user_id, sprint_id)

    def list_sprints(self, user_id, filters=None, offset=0, limit=None):
        return self._list(SprintRow, SprintRecord, user_id, filters, offset, limit)

    def update_sprint(self, user_id, sprint_id, changes):
        return self._update(SprintRow, SprintRecord, user_id, sprint_id, changes)

    def delete_sprint(self, user_id: str, sprint_id: str) -> bool:
        with self.Session() as session:
            row = self._get_owned_row(session, SprintRow, user_id, sprint_id)
            if not row:
                return False
            session.execute(
                update(TaskRow)
                .where(TaskRow.sprint_id == sprint_id)
                .values(sprint_id=None)
            )
            session.delete(row)
            session.commit()
            return True

    # Tasks

    def create_task(self, user_id: str, values: dict) -> TaskRecord:
        values = dict(values)
        if values.get("status") == TaskStatus.DONE.value:
            values["completed_at"] = utcnow()
        return self._create(TaskRow, TaskRecord, user_id, values)

    def get_task(self, user_id: str, task_id: str) -> Optional[TaskRecord]:
        return self._get(TaskRow, TaskRecord, user_id, task_id)

    def list_tasks(self, user_id, filters=None, offset=0, limit=None):
        return self._list(TaskRow, TaskRecord, user_id, filters, offset, limit)

    def update_task(self, user_id, task_id, changes):
        return self._update(TaskRow, TaskRecord, user_id, task_id, changes)

    def delete_task(self, user_id: str, task_id: str) -> bool:
        with self.Session() as session:
            row = self._get_owned_row(session, TaskRow, user_id, task_id)
            if not row:
                return False
            session.execute(
                delete(TimeEntryRow).where(TimeEntryRow.task_id == task_id)
            )
            session.delete(row)
            session.commit()
            return True

    # Time entries

    def create_time_entry(self, user_id, task_id, values):
        with self.Session() as session:
            row = TimeEntryRow(
                id=_new_id(),
                user_id=user_id,
                task_id=task_id,
                created_at=utcnow(),
                **values,
            )
            session.add(row)
            session.commit()
            return _to_record(row, TimeEntryRecord)

    def list_time_entries(self, user_id, task_id=None):
        with self.Session() as session:
            stmt = select(TimeEntryRow).where(TimeEntryRow.user_id == user_id)
            if task_id is not None:
                stmt = stmt.where(TimeEntryRow.task_id == task_id)
            stmt = stmt.order_by(TimeEntryRow.start_time.asc())
            return [
                _to_record(row, TimeEntryRecord)
                for row in session.execute(stmt).scalars()
            ]

    # Conversations

    def create_conversation(self, user_id, context=None):
        now = utcnow()
        with self.Session() as session:
            row = ConversationRow(
                id=_new_id(),
                user_id=user_id,
                type=AI_CHAT_CONVERSATION,
                context=context,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return _to_record(row, ConversationRecord)

    def get_conversation(self, user_id, conversation_id):
        return self._get(ConversationRow, ConversationRecord, user_id, conversation_id)

    def list_conversations(self, user_id):
        with self.Session() as session:
            rows = session.execute(
                select(ConversationRow)
                .where(
                    ConversationRow.user_id == user_id,
                    ConversationRow.type == AI_CHAT_CONVERSATION,
                )
                .order_by(ConversationRow.updated_at.desc())
            ).scalars()
            return [_to_record(row, ConversationRecord) for row in rows]

    def add_messages(self, conversation_id, messages):
        now = utcnow()
        with self.Session() as session:
            seq = session.execute(
                select(func.count())
                .select_from(MessageRow)
                .where(MessageRow.conversation_id == conversation_id)
            ).scalar_one()
            rows = []
            for role, content in messages:
                row = MessageRow(
                    id=_new_id(),
                    conversation_id=conversation_id,
                    role=role,
                    content=content,
                    created_at=now,
                    seq=seq,
                )
                seq += 1
                session.add(row)
                rows.append(row)
            conversation = session.get(ConversationRow, conversation_id)
            if conversation:
                conversation.updated_at = now
            session.commit()
            return [_to_record(row, MessageRecord) for row in rows]

    def list_messages(self, conversation_id):
        with self.Session() as session:
            rows = session.execute(
                select(MessageRow)
                .where(MessageRow.conversation_id == conversation_id)
                .order_by(MessageRow.seq.asc())
            ).scalars()
            return [_to_record(row, MessageRecord) for row in rows]
