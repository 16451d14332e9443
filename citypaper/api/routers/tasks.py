"""Background task status endpoints."""

from fastapi import APIRouter, HTTPException

from ..schemas import TaskResponse
from ..tasks import task_manager

router = APIRouter()


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task_status(task_id: str):
    """Status and progress of a background task."""
    task_info = await task_manager.get_task(task_id)
    if task_info is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task_info.to_response()
