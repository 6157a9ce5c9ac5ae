"""
Goal, sprint, task and analytics routes.

Every row is scoped to the authenticated user; a row owned by someone else
is reported exactly like a missing one.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from splan.assistant import Assistant
from splan.cache import Cache, cached
from splan.config import Settings, get_settings
from splan.db import (
    DbClient,
    GoalRecord,
    SprintRecord,
    TaskRecord,
    UserRecord,
    utcnow,
)
from splan.dependencies import get_assistant, get_cache, get_current_user, get_db_client
from splan.schemas import (
    DashboardOut,
    Envelope,
    GoalCounts,
    GoalCreate,
    GoalOut,
    GoalUpdate,
    ListEnvelope,
    MessageResponse,
    Pagination,
    Productivity,
    ScopeOut,
    SprintCounts,
    SprintCreate,
    SprintOut,
    SprintUpdate,
    TaskCounts,
    TaskCreate,
    TaskOut,
    TaskStatusUpdate,
    TaskUpdate,
    TimeEntryCreate,
    TimeEntryOut,
    model_values,
)
from splan.types import GoalStatus, Priority, SprintStatus, TaskStatus

logger = logging.getLogger(__name__)

goals_router = APIRouter(prefix="/goals", tags=["goals"])
sprints_router = APIRouter(prefix="/sprints", tags=["sprints"])
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])
analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def dashboard_key(user_id: str) -> str:
    return f"dashboard:{user_id}"


def _invalidate_dashboard(cache: Cache, user_id: str) -> None:
    cache.delete(dashboard_key(user_id))


def _enum_value(value):
    return value.value if value is not None else None


def _require_goal(db: DbClient, user_id: str, goal_id: str) -> GoalRecord:
    goal = db.get_goal(user_id, goal_id)
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


def _require_sprint(db: DbClient, user_id: str, sprint_id: str) -> SprintRecord:
    sprint = db.get_sprint(user_id, sprint_id)
    if not sprint:
        raise HTTPException(status_code=404, detail="Sprint not found")
    return sprint


def _require_task(db: DbClient, user_id: str, task_id: str) -> TaskRecord:
    task = db.get_task(user_id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _check_references(db: DbClient, user_id: str, values: dict) -> None:
    """Referenced goals and sprints must belong to the same user."""
    if values.get("goal_id"):
        _require_goal(db, user_id, values["goal_id"])
    if values.get("sprint_id"):
        _require_sprint(db, user_id, values["sprint_id"])


# Goals


@goals_router.post("", response_model=Envelope[GoalOut], status_code=201)
def create_goal(
    payload: GoalCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    goal = db.create_goal(user.id, model_values(payload))
    _invalidate_dashboard(cache, user.id)
    return Envelope[GoalOut](message="Goal created successfully", data=GoalOut(**vars(goal)))


@goals_router.get("", response_model=ListEnvelope[GoalOut])
def list_goals(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[GoalStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    category: Optional[str] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {
        "status": _enum_value(status),
        "priority": _enum_value(priority),
        "category": category,
    }
    goals, total = db.list_goals(user.id, filters, offset=(page - 1) * limit, limit=limit)
    return ListEnvelope[GoalOut](
        message="Goals retrieved successfully",
        data=[GoalOut(**vars(g)) for g in goals],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@goals_router.get("/{goal_id}", response_model=Envelope[GoalOut])
def get_goal(
    goal_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    goal = _require_goal(db, user.id, goal_id)
    return Envelope[GoalOut](message="Goal retrieved successfully", data=GoalOut(**vars(goal)))


@goals_router.put("/{goal_id}", response_model=Envelope[GoalOut])
def update_goal(
    goal_id: str,
    payload: GoalUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    goal = db.update_goal(user.id, goal_id, model_values(payload, exclude_unset=True))
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    _invalidate_dashboard(cache, user.id)
    return Envelope[GoalOut](message="Goal updated successfully", data=GoalOut(**vars(goal)))


@goals_router.delete("/{goal_id}", response_model=MessageResponse)
def delete_goal(
    goal_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    if not db.delete_goal(user.id, goal_id):
        raise HTTPException(status_code=404, detail="Goal not found")
    _invalidate_dashboard(cache, user.id)
    return MessageResponse(message="Goal deleted successfully")


@goals_router.post("/{goal_id}/regenerate-scope", response_model=Envelope[ScopeOut])
def regenerate_scope(
    goal_id: str,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    scope = assistant.regenerate_goal_scope(user.id, goal_id)
    if scope is None:
        raise HTTPException(status_code=404, detail="Goal not found")
    return Envelope[ScopeOut](
        message="Goal scope regenerated successfully", data=ScopeOut(scope=scope)
    )


# Sprints


@sprints_router.post("", response_model=Envelope[SprintOut], status_code=201)
def create_sprint(
    payload: SprintCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    values = model_values(payload)
    _check_references(db, user.id, values)
    sprint = db.create_sprint(user.id, values)
    _invalidate_dashboard(cache, user.id)
    return Envelope[SprintOut](
        message="Sprint created successfully", data=SprintOut(**vars(sprint))
    )


@sprints_router.get("", response_model=ListEnvelope[SprintOut])
def list_sprints(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[SprintStatus] = Query(None),
    goal_id: Optional[str] = Query(None, alias="goalId"),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {"status": _enum_value(status), "goal_id": goal_id}
    sprints, total = db.list_sprints(
        user.id, filters, offset=(page - 1) * limit, limit=limit
    )
    return ListEnvelope[SprintOut](
        message="Sprints retrieved successfully",
        data=[SprintOut(**vars(s)) for s in sprints],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@sprints_router.get("/{sprint_id}", response_model=Envelope[SprintOut])
def get_sprint(
    sprint_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    sprint = _require_sprint(db, user.id, sprint_id)
    return Envelope[SprintOut](
        message="Sprint retrieved successfully", data=SprintOut(**vars(sprint))
    )


@sprints_router.put("/{sprint_id}", response_model=Envelope[SprintOut])
def update_sprint(
    sprint_id: str,
    payload: SprintUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    current = _require_sprint(db, user.id, sprint_id)
    changes = model_values(payload, exclude_unset=True)
    _check_references(db, user.id, changes)
    start = changes.get("start_date") or current.start_date
    end = changes.get("end_date") or current.end_date
    if end < start:
        raise HTTPException(status_code=400, detail="End date must be after start date")
    sprint = db.update_sprint(user.id, sprint_id, changes)
    _invalidate_dashboard(cache, user.id)
    return Envelope[SprintOut](
        message="Sprint updated successfully", data=SprintOut(**vars(sprint))
    )


@sprints_router.delete("/{sprint_id}", response_model=MessageResponse)
def delete_sprint(
    sprint_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    if not db.delete_sprint(user.id, sprint_id):
        raise HTTPException(status_code=404, detail="Sprint not found")
    _invalidate_dashboard(cache, user.id)
    return MessageResponse(message="Sprint deleted successfully")


@sprints_router.post("/{sprint_id}/start", response_model=Envelope[SprintOut])
def start_sprint(
    sprint_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    _require_sprint(db, user.id, sprint_id)
    sprint = db.update_sprint(user.id, sprint_id, {"status": SprintStatus.ACTIVE.value})
    _invalidate_dashboard(cache, user.id)
    return Envelope[SprintOut](
        message="Sprint started successfully", data=SprintOut(**vars(sprint))
    )


@sprints_router.post("/{sprint_id}/complete", response_model=Envelope[SprintOut])
def complete_sprint(
    sprint_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    _require_sprint(db, user.id, sprint_id)
    done, _ = db.list_tasks(
        user.id, {"sprint_id": sprint_id, "status": TaskStatus.DONE.value}
    )
    velocity = sum(task.estimated_hours or 0.0 for task in done)
    sprint = db.update_sprint(
        user.id,
        sprint_id,
        {"status": SprintStatus.COMPLETED.value, "velocity": velocity},
    )
    logger.info("Sprint %s completed with velocity %.1f", sprint_id, velocity)
    _invalidate_dashboard(cache, user.id)
    return Envelope[SprintOut](
        message="Sprint completed successfully", data=SprintOut(**vars(sprint))
    )


# Tasks


@tasks_router.post("", response_model=Envelope[TaskOut], status_code=201)
def create_task(
    payload: TaskCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    values = model_values(payload)
    _check_references(db, user.id, values)
    task = db.create_task(user.id, values)
    _invalidate_dashboard(cache, user.id)
    return Envelope[TaskOut](message="Task created successfully", data=TaskOut(**vars(task)))


@tasks_router.get("", response_model=ListEnvelope[TaskOut])
def list_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    sprint_id: Optional[str] = Query(None, alias="sprintId"),
    goal_id: Optional[str] = Query(None, alias="goalId"),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {
        "status": _enum_value(status),
        "priority": _enum_value(priority),
        "sprint_id": sprint_id,
        "goal_id": goal_id,
    }
    tasks, total = db.list_tasks(user.id, filters, offset=(page - 1) * limit, limit=limit)
    return ListEnvelope[TaskOut](
        message="Tasks retrieved successfully",
        data=[TaskOut(**vars(t)) for t in tasks],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@tasks_router.get("/{task_id}", response_model=Envelope[TaskOut])
def get_task(
    task_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    task = _require_task(db, user.id, task_id)
    return Envelope[TaskOut](message="Task retrieved successfully", data=TaskOut(**vars(task)))


@tasks_router.put("/{task_id}", response_model=Envelope[TaskOut])
def update_task(
    task_id: str,
    payload: TaskUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    _require_task(db, user.id, task_id)
    changes = model_values(payload, exclude_unset=True)
    _check_references(db, user.id, changes)
    task = db.update_task(user.id, task_id, changes)
    _invalidate_dashboard(cache, user.id)
    return Envelope[TaskOut](message="Task updated successfully", data=TaskOut(**vars(task)))


@tasks_router.patch("/{task_id}/status", response_model=Envelope[TaskOut])
def update_task_status(
    task_id: str,
    payload: TaskStatusUpdate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    task = db.update_task(user.id, task_id, {"status": payload.status.value})
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    _invalidate_dashboard(cache, user.id)
    return Envelope[TaskOut](
        message="Task status updated successfully", data=TaskOut(**vars(task))
    )


@tasks_router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    if not db.delete_task(user.id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    _invalidate_dashboard(cache, user.id)
    return MessageResponse(message="Task deleted successfully")


@tasks_router.post(
    "/{task_id}/time-tracking", response_model=Envelope[TimeEntryOut], status_code=201
)
def track_time(
    task_id: str,
    payload: TimeEntryCreate,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
):
    _require_task(db, user.id, task_id)
    values = model_values(payload)
    if values["duration"] is None and values["end_time"] is not None:
        values["duration"] = (
            values["end_time"] - values["start_time"]
        ).total_seconds() / 60
    entry = db.create_time_entry(user.id, task_id, values)
    _invalidate_dashboard(cache, user.id)
    return Envelope[TimeEntryOut](
        message="Time entry created successfully", data=TimeEntryOut(**vars(entry))
    )


# Analytics


def build_dashboard(db: DbClient, user_id: str) -> dict:
    """Aggregate counts for the dashboard as plain, cacheable values."""
    goals, _ = db.list_goals(user_id)
    sprints, _ = db.list_sprints(user_id)
    tasks, _ = db.list_tasks(user_id)
    now = utcnow()

    done = [t for t in tasks if t.status == TaskStatus.DONE.value]
    overdue = [
        t
        for t in tasks
        if t.due_date is not None and t.due_date < now and t.status != TaskStatus.DONE.value
    ]
    hours = [t.actual_hours for t in done if t.actual_hours]

    return DashboardOut(
        goals=GoalCounts(
            total=len(goals),
            active=sum(1 for g in goals if g.status == GoalStatus.ACTIVE.value),
            completed=sum(1 for g in goals if g.status == GoalStatus.COMPLETED.value),
        ),
        sprints=SprintCounts(
            total=len(sprints),
            active=sum(1 for s in sprints if s.status == SprintStatus.ACTIVE.value),
            completed=sum(1 for s in sprints if s.status == SprintStatus.COMPLETED.value),
        ),
        tasks=TaskCounts(
            total=len(tasks),
            completed=len(done),
            in_progress=sum(
                1 for t in tasks if t.status == TaskStatus.IN_PROGRESS.value
            ),
            overdue=len(overdue),
        ),
        productivity=Productivity(
            completion_rate=round(len(done) / len(tasks) * 100, 2) if tasks else 0.0,
            average_task_duration=round(sum(hours) / len(hours), 2) if hours else 0.0,
        ),
    ).model_dump()


@analytics_router.get("/dashboard", response_model=Envelope[DashboardOut])
def dashboard(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    cache: Cache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    data = cached(
        cache,
        dashboard_key(user.id),
        lambda: build_dashboard(db, user.id),
        ttl=settings.cache_ttl_seconds,
    )
    return Envelope[DashboardOut](
        message="Dashboard data retrieved successfully", data=DashboardOut(**data)
    )
