"""Read-only views over one-shot tasks."""

import logging

from ltc.common.exceptions import TaskNotFoundError
from ltc.common.models import TaskResponse
from ltc.receptor_client import ReceptorClient

logger = logging.getLogger(__name__)

TASK_NOT_FOUND_ERROR_MESSAGE = "Task not found."


class TaskExaminer:
    """
    Task lookups behind ``ltc task`` and the task table of ``ltc list``.

    Parameters
    ----------
    receptor_client : ReceptorClient
        Control-plane client
    """

    def __init__(self, receptor_client: ReceptorClient) -> None:
        self.receptor_client = receptor_client

    async def task_status(self, task_guid: str) -> TaskResponse:
        """
        Current state of one task.

        Raises
        ------
        TaskNotFoundError
            If the receptor has no such task
        """
        try:
            return await self.receptor_client.get_task(task_guid)
        except TaskNotFoundError as e:
            raise TaskNotFoundError(TASK_NOT_FOUND_ERROR_MESSAGE, details={"task": task_guid}) from e

    async def list_tasks(self) -> list[TaskResponse]:
        """Every task, sorted by guid."""
        tasks = await self.receptor_client.tasks()
        return sorted(tasks, key=lambda task: task.task_guid)
