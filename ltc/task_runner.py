"""
Submit, cancel and delete one-shot tasks.

A submitted task document is passed to the receptor as written; only its
guid is checked client-side.
"""

import json
import logging

from pydantic import ValidationError

from ltc.common.exceptions import (
    AlreadyExistsError,
    InvalidUserInputError,
    InvariantViolationError,
    ReservedNameError,
)
from ltc.common.models import (
    LATTICE_DOMAIN,
    RESERVED_DEBUG_GUID,
    RESERVED_DEBUG_GUID_MESSAGE,
    TaskCreateRequest,
    TaskState,
)
from ltc.receptor_client import ReceptorClient
from ltc.task_examiner import TaskExaminer

logger = logging.getLogger(__name__)

CANCELLABLE_STATES = (TaskState.PENDING, TaskState.CLAIMED, TaskState.RUNNING)


class TaskRunner:
    """
    Task lifecycle operations.

    Parameters
    ----------
    receptor_client : ReceptorClient
        Control-plane client
    task_examiner : TaskExaminer
        Used to check the task state before deleting or cancelling
    """

    def __init__(self, receptor_client: ReceptorClient, task_examiner: TaskExaminer) -> None:
        self.receptor_client = receptor_client
        self.task_examiner = task_examiner

    async def submit_task(self, task_json: bytes | str) -> str:
        """
        Create a task from a JSON document.

        Returns
        -------
        str
            The document's task guid

        Raises
        ------
        LatticeError
            On failure; ``details["task_guid"]`` names the guid when the
            document could be parsed
        """
        try:
            request = TaskCreateRequest.model_validate(json.loads(task_json))
        except (ValueError, ValidationError) as e:
            raise InvalidUserInputError(str(e)) from e

        guid = request.task_guid
        details = {"task_guid": guid}
        if guid == RESERVED_DEBUG_GUID:
            raise ReservedNameError(RESERVED_DEBUG_GUID_MESSAGE, details=details)

        submitted = await self.receptor_client.tasks()
        if any(task.task_guid == guid for task in submitted):
            raise AlreadyExistsError(f"{guid} has already been submitted", details=details)

        await self.receptor_client.upsert_domain(LATTICE_DOMAIN, 0)
        await self.receptor_client.create_task(request)
        logger.info(f"Submitted task {guid}")
        return guid

    async def delete_task(self, task_guid: str) -> None:
        """
        Delete a completed task.

        Raises
        ------
        InvariantViolationError
            If the task has not completed
        """
        task = await self.task_examiner.task_status(task_guid)
        if task.state != TaskState.COMPLETED:
            raise InvariantViolationError(
                f"{task_guid} is not in COMPLETED state", details={"state": task.state.value}
            )
        await self.receptor_client.delete_task(task_guid)

    async def cancel_task(self, task_guid: str) -> bool:
        """
        Cancel a task that has not finished.

        Returns
        -------
        bool
            False when the task had already completed and nothing was sent

        Raises
        ------
        InvariantViolationError
            If the task is resolving
        """
        task = await self.task_examiner.task_status(task_guid)
        if task.state == TaskState.COMPLETED:
            logger.debug(f"Task {task_guid} already completed, nothing to cancel")
            return False
        if task.state not in CANCELLABLE_STATES:
            raise InvariantViolationError(
                f"Unable to cancel {task.state.value} task", details={"task": task_guid}
            )
        await self.receptor_client.cancel_task(task_guid)
        return True
