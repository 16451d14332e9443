"""Background task management for batch exports."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Coroutine, Optional

from .schemas import BatchProgress, TaskResponse, TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class TaskInfo:
    """Information about a running task."""

    task_id: str
    task_type: str
    status: TaskStatus
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[BatchProgress] = None
    error: Optional[str] = None
    result: Any = None

    # Internal
    _task: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_response(self) -> TaskResponse:
        return TaskResponse(
            task_id=self.task_id,
            task_type=self.task_type,
            status=self.status,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            progress=self.progress,
            error=self.error,
            result=self.result,
        )


class TaskManager:
    """Runs batch exports in the background and tracks their progress."""

    def __init__(self):
        self._tasks: dict[str, TaskInfo] = {}
        self._lock = asyncio.Lock()

    def generate_task_id(self) -> str:
        """Generate a unique task ID."""
        return str(uuid.uuid4())[:8]

    async def create_task(
        self,
        task_type: str,
        coro: Coroutine,
        task_id: Optional[str] = None,
    ) -> TaskInfo:
        """Create and start a new background task.

        Args:
            task_type: Type of task (e.g. ``batch``)
            coro: Coroutine to run; its return value becomes the task result
            task_id: Pre-generated ID (when the coroutine needs to know it)

        Returns:
            TaskInfo for the created task
        """
        task_id = task_id or self.generate_task_id()

        task_info = TaskInfo(
            task_id=task_id,
            task_type=task_type,
            status=TaskStatus.IDLE,
        )

        async def wrapper():
            try:
                task_info.status = TaskStatus.RUNNING
                task_info.started_at = datetime.now()
                task_info.result = await coro
                task_info.status = TaskStatus.COMPLETED
            except asyncio.CancelledError:
                task_info.status = TaskStatus.CANCELLED
            except Exception as e:
                logger.error("Task %s (%s) failed: %s", task_id, task_type, e)
                task_info.status = TaskStatus.FAILED
                task_info.error = str(e)
            finally:
                task_info.completed_at = datetime.now()

        async with self._lock:
            task_info._task = asyncio.create_task(wrapper())
            self._tasks[task_id] = task_info

        return task_info

    async def get_task(self, task_id: str) -> Optional[TaskInfo]:
        """Get task info by ID."""
        return self._tasks.get(task_id)

    def update_progress(self, task_id: str, current_index: int, total: int, current_label: str) -> None:
        """Record batch progress for a task."""
        task_info = self._tasks.get(task_id)
        if task_info:
            task_info.progress = BatchProgress(
                current_index=current_index,
                total=total,
                current_label=current_label,
            )

    async def drain(self) -> None:
        """Wait for running tasks to finish. Batches are never cut off mid-capture."""
        running = [info._task for info in self._tasks.values() if info._task is not None and not info._task.done()]
        if running:
            logger.info("Waiting for %d running task(s)", len(running))
            await asyncio.gather(*running, return_exceptions=True)


# Global task manager instance
task_manager = TaskManager()
