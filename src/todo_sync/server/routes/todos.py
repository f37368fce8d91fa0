"""Todo CRUD routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..middleware import require_auth
from ..models import User
from ..schemas import (
    Envelope,
    PaginatedEnvelope,
    TodoCreateRequest,
    TodoResponse,
    TodoUpdateRequest,
    success,
)
from ..services import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TodoNotFoundError,
    TodoPermissionError,
    TodoService,
    get_todo_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/todos", tags=["todos"])


def _raise_for(error: Exception):
    if isinstance(error, TodoNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found")
    if isinstance(error, TodoPermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    raise error


@router.post("", response_model=Envelope[TodoResponse], status_code=status.HTTP_201_CREATED)
async def create_todo(body: TodoCreateRequest,
                      current_user: User = Depends(require_auth),
                      service: TodoService = Depends(get_todo_service)):
    todo = service.create(current_user.id, body.title, body.priority.value, body.due_date)
    return success("Todo created successfully", todo.to_dict())


@router.get("", response_model=PaginatedEnvelope[TodoResponse])
async def list_todos(page: int = Query(1, ge=1),
                     limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
                     completed: Optional[bool] = None,
                     current_user: User = Depends(require_auth),
                     service: TodoService = Depends(get_todo_service)):
    """List the caller's todos, newest first.

    Args:
        page: 1-based page number
        limit: Page size
        completed: Optional completion filter
    """
    result = service.list(current_user.id, page, limit, completed)
    return {
        "success": True,
        "message": "Todos retrieved successfully",
        "data": [todo.to_dict() for todo in result.items],
        "pagination": result.pagination(),
    }


@router.get("/{todo_id}", response_model=Envelope[TodoResponse])
async def get_todo(todo_id: str,
                   current_user: User = Depends(require_auth),
                   service: TodoService = Depends(get_todo_service)):
    try:
        todo = service.get(current_user.id, todo_id)
    except (TodoNotFoundError, TodoPermissionError) as e:
        _raise_for(e)
    return success("Todo retrieved successfully", todo.to_dict())


@router.put("/{todo_id}", response_model=Envelope[TodoResponse])
async def update_todo(todo_id: str, body: TodoUpdateRequest,
                      current_user: User = Depends(require_auth),
                      service: TodoService = Depends(get_todo_service)):
    """Partially update a todo.

    ``due_date`` is cleared when sent as null; other null fields are ignored.
    """
    fields = body.model_dump(exclude_unset=True)
    fields = {k: v for k, v in fields.items() if v is not None or k == "due_date"}
    if "priority" in fields:
        fields["priority"] = fields["priority"].value

    try:
        todo = service.update(current_user.id, todo_id, fields)
    except (TodoNotFoundError, TodoPermissionError) as e:
        _raise_for(e)
    return success("Todo updated successfully", todo.to_dict())


@router.delete("/{todo_id}")
async def delete_todo(todo_id: str,
                      current_user: User = Depends(require_auth),
                      service: TodoService = Depends(get_todo_service)):
    try:
        service.delete(current_user.id, todo_id)
    except (TodoNotFoundError, TodoPermissionError) as e:
        _raise_for(e)
    return success("Todo deleted successfully")
