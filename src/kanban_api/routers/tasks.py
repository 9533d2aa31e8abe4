from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from ..dependencies import Services, get_current_user, get_services
from ..models import UserEntity
from ..repositories import TaskRepository
from ..schemas import ErrorListResponse, ErrorResponse, TaskOut, TaskPatch, TaskPayload

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
    responses={401: {"model": ErrorResponse, "description": "Missing, invalid or expired token"}},
)


def _task_repo(services: Services = Depends(get_services)) -> TaskRepository:
    """
    Dependency wrapper for the task repository to keep signatures clean.
    """
    return services.tasks


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TaskOut],
    summary="List Tasks",
    description="List the caller's tasks in creation order.",
)
def list_tasks(user: UserEntity = Depends(get_current_user), repo: TaskRepository = Depends(_task_repo)) -> List[TaskOut]:
    return [TaskOut(**t) for t in repo.list(user)]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task owned by the caller. Column defaults to 'todo'.",
    responses={
        201: {"description": "Task created successfully"},
        422: {"model": ErrorListResponse, "description": "Validation error"},
    },
)
def create_task(
    payload: TaskPayload,
    user: UserEntity = Depends(get_current_user),
    repo: TaskRepository = Depends(_task_repo),
) -> TaskOut:
    created = repo.create(user, payload.task.model_dump(exclude_unset=True))
    return TaskOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get one of the caller's tasks by ID.",
    responses={404: {"model": ErrorResponse, "description": "Task not found or not authorized"}},
)
def get_task(task_id: int, user: UserEntity = Depends(get_current_user), repo: TaskRepository = Depends(_task_repo)) -> TaskOut:
    return TaskOut(**repo.get(user, task_id))  # type: ignore[arg-type]


def _update(task_id: int, payload: TaskPatch, user: UserEntity, repo: TaskRepository) -> TaskOut:
    updated = repo.update(user, task_id, payload.task.model_dump(exclude_unset=True))
    return TaskOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Partially update one of the caller's tasks; omitted fields are left unchanged.",
    responses={
        404: {"model": ErrorResponse, "description": "Task not found or not authorized"},
        422: {"model": ErrorListResponse, "description": "Validation error"},
    },
)
def patch_task(
    task_id: int,
    payload: TaskPatch,
    user: UserEntity = Depends(get_current_user),
    repo: TaskRepository = Depends(_task_repo),
) -> TaskOut:
    return _update(task_id, payload, user, repo)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task (PUT)",
    description="Same partial-update semantics as PATCH.",
    responses={
        404: {"model": ErrorResponse, "description": "Task not found or not authorized"},
        422: {"model": ErrorListResponse, "description": "Validation error"},
    },
)
def put_task(
    task_id: int,
    payload: TaskPatch,
    user: UserEntity = Depends(get_current_user),
    repo: TaskRepository = Depends(_task_repo),
) -> TaskOut:
    return _update(task_id, payload, user, repo)


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete Task",
    description="Delete one of the caller's tasks.",
    responses={404: {"model": ErrorResponse, "description": "Task not found or not authorized"}},
)
def delete_task(task_id: int, user: UserEntity = Depends(get_current_user), repo: TaskRepository = Depends(_task_repo)) -> Response:
    """
    Delete a task. Returns 204 on success, 404 if not found or not owned.
    """
    repo.delete(user, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
