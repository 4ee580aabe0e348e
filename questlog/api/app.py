"""FastAPI web application for questlog."""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from questlog.api.dependencies import get_current_user_id
from questlog.api.models import (
    CharacterCreateRequest,
    CompleteTaskRequest,
    ExperimentCreateRequest,
    ExternalSourceCreateRequest,
    ExternalSourceUpdateRequest,
    QuestCreateRequest,
    StatCreateRequest,
    SyncRequest,
    TaskCreateRequest,
    TaskUpdateRequest,
)
from questlog.database.database import get_db
from questlog.database.character_stat_repository import CharacterStatRepository
from questlog.engine.completion import complete_task, list_completed_tasks
from questlog.engine.containers import container_progress, create_experiment, create_quest, delete_container
from questlog.engine.dashboard import get_dashboard
from questlog.engine.leveling import compute_leveling
from questlog.engine.task_state import TaskService
from questlog.errors import NotFoundError, StateConflictError, UnauthorizedError, ValidationError
from questlog.integrations.external_sync import (
    list_external_sources,
    list_integrations,
    register_external_source,
    sync_external_source,
    update_external_source,
)
from questlog.integrations.templates import list_templates
from questlog.models.constants import DASHBOARD_DEFAULT_LIMIT, HISTORY_DEFAULT_LIMIT
from questlog.models.container import ContainerKind
from questlog.validation import require_text

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="questlog API",
    description="Task & progression engine: tasks, XP, leveling, dashboard and external sync",
    version="0.1.0",
)


def _error_response(status_code: int, exc) -> JSONResponse:
    content = {"detail": exc.message}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(StateConflictError)
async def state_conflict_handler(request: Request, exc: StateConflictError):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    return _error_response(status.HTTP_401_UNAUTHORIZED, exc)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/leveling/{total_xp}")
def leveling(total_xp: int):
    """Level breakdown for an XP total."""
    return asdict(compute_leveling(total_xp))


# Character


@app.post("/character", status_code=status.HTTP_201_CREATED)
def create_character(
    request: CharacterCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    repo = CharacterStatRepository(db)
    if repo.get_character_row(user_id):
        raise StateConflictError("Character already exists")
    character = repo.create_character(
        user_id,
        require_text(request.name, "name"),
        character_class=request.character_class,
        categories=[require_text(c, "stats") for c in dict.fromkeys(request.stats)],
    )
    return {"character": character, "stats": repo.get_stats(user_id)}


@app.get("/character")
def get_character(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    repo = CharacterStatRepository(db)
    character = repo.get_character(user_id)
    if not character:
        raise NotFoundError("Character not found")
    return {"character": character, "stats": repo.get_stats(user_id)}


@app.post("/character/stats", status_code=status.HTTP_201_CREATED)
def add_stat(
    request: StatCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    repo = CharacterStatRepository(db)
    character = repo.get_character_row(user_id)
    if not character:
        raise NotFoundError("Character not found")
    category = require_text(request.category, "category")
    if category in repo.stats_by_category(character.id):
        raise StateConflictError(f"Stat {category} already exists", field="category")
    return {"stat": repo.add_stat(character.id, category)}


# Tasks


@app.post("/tasks", status_code=status.HTTP_201_CREATED)
def create_task(
    request: TaskCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    task = TaskService(db).create_task(
        user_id,
        request.source,
        request.title,
        source_id=request.source_id,
        description=request.description,
        target_stats=request.target_stats,
        estimated_xp=request.estimated_xp,
        due_date=request.due_date,
    )
    return {"task": task}


@app.get("/tasks")
def list_tasks(
    source: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """All live tasks of the caller, including ad-hoc and project side lists."""
    tasks = TaskService(db).list_tasks(user_id, source=source, status=status_filter)
    return {"tasks": tasks, "count": len(tasks)}


@app.get("/tasks/completed")
def completed_tasks(
    limit: int = Query(HISTORY_DEFAULT_LIMIT),
    offset: int = Query(0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Completion history, newest first."""
    rows, total = list_completed_tasks(db, user_id, limit=limit, offset=offset)
    return {
        "tasks": [{"task": task, "completion": completion} for task, completion in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        },
    }


@app.get("/tasks/{task_id}")
def get_task(task_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"task": TaskService(db).get_task(user_id, task_id)}


@app.patch("/tasks/{task_id}")
def edit_task(
    task_id: str,
    request: TaskUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    changes = request.model_dump(exclude_unset=True)
    return {"task": TaskService(db).edit_task(user_id, task_id, changes)}


@app.post("/tasks/{task_id}/complete")
def complete(
    task_id: str,
    request: CompleteTaskRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = complete_task(
        db,
        user_id,
        task_id,
        request.actual_xp,
        stat_awards=request.stat_awards,
        feedback=request.feedback,
    )
    return asdict(result)


@app.post("/tasks/{task_id}/skip")
def skip(task_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"task": TaskService(db).skip_task(user_id, task_id)}


@app.post("/tasks/{task_id}/fail")
def fail(task_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"task": TaskService(db).fail_task(user_id, task_id)}


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    purge: bool = Query(False, description="Permanently delete instead of soft-delete"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = TaskService(db)
    if purge:
        service.purge_task(user_id, task_id)
    else:
        service.delete_task(user_id, task_id)


@app.post("/tasks/{task_id}/restore")
def restore_task(task_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"task": TaskService(db).restore_task(user_id, task_id)}


# Dashboard


@app.get("/dashboard")
def dashboard(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(DASHBOARD_DEFAULT_LIMIT),
    offset: int = Query(0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = get_dashboard(db, user_id, status=status_filter, limit=limit, offset=offset)
    return {
        "tasks": [{**item.task.model_dump(), "metadata": item.metadata} for item in result.tasks],
        "summary": asdict(result.summary),
        "pagination": asdict(result.pagination),
    }


# Quests and experiments


@app.post("/quests", status_code=status.HTTP_201_CREATED)
def new_quest(
    request: QuestCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"quest": create_quest(db, user_id, **request.model_dump())}


@app.post("/experiments", status_code=status.HTTP_201_CREATED)
def new_experiment(
    request: ExperimentCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"experiment": create_experiment(db, user_id, **request.model_dump())}


@app.get("/quests/{quest_id}/progress")
def quest_progress(quest_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"progress": container_progress(db, user_id, ContainerKind.QUEST, quest_id)}


@app.get("/experiments/{experiment_id}/progress")
def experiment_progress(experiment_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"progress": container_progress(db, user_id, ContainerKind.EXPERIMENT, experiment_id)}


@app.delete("/quests/{quest_id}")
def remove_quest(quest_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"detached_tasks": delete_container(db, user_id, ContainerKind.QUEST, quest_id)}


@app.delete("/experiments/{experiment_id}")
def remove_experiment(experiment_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"detached_tasks": delete_container(db, user_id, ContainerKind.EXPERIMENT, experiment_id)}


# External sources


def _public_source(source) -> dict:
    """Source as returned to clients; credentials are never echoed back."""
    data = source.model_dump(by_alias=False)
    data["config"] = {key: "***" for key in source.config}
    return data


@app.get("/external-sources/templates")
async def source_templates():
    return {"templates": list_templates()}


@app.post("/external-sources", status_code=status.HTTP_201_CREATED)
def create_source(
    request: ExternalSourceCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    source = register_external_source(
        db,
        user_id,
        request.name,
        request.type,
        request.auth_type,
        api_endpoint=request.api_endpoint,
        config=request.config,
        mapping_rules=request.mapping_rules,
        sync_schedule=request.sync_schedule,
        is_active=request.is_active,
        metadata=request.metadata,
    )
    return {"source": _public_source(source)}


@app.get("/external-sources")
def list_sources(
    source_type: Optional[str] = Query(None, alias="type"),
    is_active: Optional[bool] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    sources = list_external_sources(db, user_id, source_type=source_type, is_active=is_active)
    return {"sources": [_public_source(source) for source in sources]}


@app.put("/external-sources/{source_id}")
def update_source(
    source_id: str,
    request: ExternalSourceUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    source = update_external_source(db, user_id, source_id, request.model_dump(exclude_unset=True))
    return {"source": _public_source(source)}


@app.post("/external-sources/{source_id}/sync")
def sync_source(
    source_id: str,
    request: SyncRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Sync already-fetched records; per-record and auth problems come back as counts."""
    result = sync_external_source(db, user_id, source_id, request.records, auth_error=request.auth_error)
    return {"sync_result": asdict(result)}


@app.get("/external-sources/{source_id}/integrations")
def source_integrations(
    source_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"integrations": list_integrations(db, user_id, source_id, status=status_filter)}
