"""
Pydantic schemas for the Splan API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Generic, Literal, Optional, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from splan.types import GoalStatus, Priority, SprintStatus, TaskStatus

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Naive timestamps from clients are read as UTC.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def _not_null(value):
    # Omitted means "leave as is"; an explicit null would blank a required column.
    if value is None:
        raise ValueError("must not be null")
    return value


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(ApiModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None


class MessageResponse(ApiModel):
    success: bool = True
    message: str


class Pagination(ApiModel):
    page: int
    limit: int
    total: int


class ListEnvelope(ApiModel, Generic[T]):
    success: bool = True
    message: str
    data: list[T]
    pagination: Pagination


# Auth


class RegisterRequest(ApiModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class UserOut(ApiModel):
    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime


class AuthData(ApiModel):
    user: UserOut
    token: str


class UpdateProfileRequest(ApiModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    avatar: Optional[str] = Field(None, pattern=r"^https?://\S+$")


# Goals


class GoalCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    target_date: Optional[UtcDatetime] = None
    estimated_effort: Optional[str] = None


class GoalUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[GoalStatus] = None
    target_date: Optional[UtcDatetime] = None
    estimated_effort: Optional[str] = None
    actual_effort: Optional[str] = None
    progress: Optional[float] = Field(None, ge=0, le=100)

    @field_validator("title", "priority", "status", "progress", mode="before")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class GoalOut(ApiModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    priority: str
    status: str
    target_date: Optional[datetime] = None
    estimated_effort: Optional[str] = None
    actual_effort: Optional[str] = None
    progress: float
    scope_document: Optional[str] = None
    ai_confidence_score: Optional[float] = None
    created_at: datetime
    updated_at: datetime


# Sprints


class SprintCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    goal_id: Optional[str] = None
    start_date: UtcDatetime
    end_date: UtcDatetime
    capacity: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_dates(self) -> "SprintCreate":
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class SprintUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    goal_id: Optional[str] = None
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    status: Optional[SprintStatus] = None
    capacity: Optional[float] = Field(None, gt=0)
    velocity: Optional[float] = None

    @field_validator("title", "start_date", "end_date", "status", mode="before")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class SprintOut(ApiModel):
    id: str
    user_id: str
    goal_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    status: str
    capacity: Optional[float] = None
    velocity: Optional[float] = None
    created_at: datetime
    updated_at: datetime


# Tasks


class TaskCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    sprint_id: Optional[str] = None
    goal_id: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    estimated_hours: Optional[float] = Field(None, gt=0)
    due_date: Optional[UtcDatetime] = None
    dependencies: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None


class TaskUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    sprint_id: Optional[str] = None
    goal_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    estimated_hours: Optional[float] = Field(None, gt=0)
    actual_hours: Optional[float] = Field(None, gt=0)
    progress: Optional[float] = Field(None, ge=0, le=100)
    due_date: Optional[UtcDatetime] = None
    dependencies: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("title", "status", "priority", "progress", mode="before")
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class TaskStatusUpdate(ApiModel):
    status: TaskStatus


class TaskOut(ApiModel):
    id: str
    user_id: str
    sprint_id: Optional[str] = None
    goal_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    progress: float
    due_date: Optional[datetime] = None
    dependencies: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TimeEntryCreate(ApiModel):
    start_time: UtcDatetime
    end_time: Optional[UtcDatetime] = None
    duration: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_times(self) -> "TimeEntryCreate":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class TimeEntryOut(ApiModel):
    id: str
    user_id: str
    task_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime


# Dashboard


class GoalCounts(ApiModel):
    total: int
    active: int
    completed: int


class SprintCounts(ApiModel):
    total: int
    active: int
    completed: int


class TaskCounts(ApiModel):
    total: int
    completed: int
    in_progress: int
    overdue: int


class Productivity(ApiModel):
    completion_rate: float
    average_task_duration: float


class DashboardOut(ApiModel):
    goals: GoalCounts
    sprints: SprintCounts
    tasks: TaskCounts
    productivity: Productivity


# AI


class ChatRequest(ApiModel):
    message: Optional[str] = None
    conversation_id: Optional[str] = None


class ChatOut(ApiModel):
    response: str
    conversation_id: str


class SuggestGoalsRequest(ApiModel):
    context: Optional[str] = None


class SuggestTasksRequest(ApiModel):
    goal_id: Optional[str] = None


class SuggestionsOut(ApiModel):
    suggestions: list[str]


class ScopeOut(ApiModel):
    scope: str


class ChatMessageOut(ApiModel):
    role: Literal["user", "assistant"]
    content: str


class MessagesOut(ApiModel):
    messages: list[ChatMessageOut]


class ConversationOut(ApiModel):
    id: str
    user_id: str
    messages: list[ChatMessageOut]
    context: Optional[str] = None
    summary: Optional[str] = None
    updated_at: datetime


class ConversationsOut(ApiModel):
    conversations: list[ConversationOut]


class HealthResponse(ApiModel):
    success: bool = True
    message: str
    cache: dict


def model_values(model: BaseModel, *, exclude_unset: bool = False) -> dict:
    """Dump a request model to store-ready values, with enums as plain strings."""
    values = model.model_dump(exclude_unset=exclude_unset)
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in values.items()
    }
