"""``submit-task``, ``task``, ``cancel-task`` and ``delete-task``."""

import logging
from pathlib import Path

from rich.table import Table

from ltc.common.exceptions import LatticeError, TaskNotFoundError
from ltc.common.models import TaskState
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.task_examiner import TaskExaminer
from ltc.task_runner import TaskRunner
from ltc.terminal import TerminalUI, green, red, yellow

logger = logging.getLogger(__name__)

IN_PROGRESS_STATES = (TaskState.PENDING, TaskState.CLAIMED, TaskState.RUNNING)
FINISHED_STATES = (TaskState.COMPLETED, TaskState.RESOLVING)


class TaskCommands:
    """
    Task commands.

    Parameters
    ----------
    ui : TerminalUI
        Output terminal
    task_runner : TaskRunner
        Task lifecycle operations
    task_examiner : TaskExaminer
        Task lookups
    exit_handler : ExitHandler
        Exit path
    """

    def __init__(
        self,
        ui: TerminalUI,
        task_runner: TaskRunner,
        task_examiner: TaskExaminer,
        exit_handler: ExitHandler,
    ) -> None:
        self.ui = ui
        self.task_runner = task_runner
        self.task_examiner = task_examiner
        self.exit_handler = exit_handler

    async def submit_task(self, path: str) -> None:
        if not path:
            self.ui.say_line("Path to JSON is required")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            task_json = Path(path).read_bytes()
        except OSError as e:
            self.ui.say_line(f"Error reading file: {e}")
            self.exit_handler.exit(ExitCode.FILE_SYSTEM_ERROR)

        try:
            guid = await self.task_runner.submit_task(task_json)
        except LatticeError as e:
            self.ui.say_line(f"Error submitting {e.details.get('task_guid', '')}: {e}")
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        self.ui.say_line(green(f"Successfully submitted {guid}"))

    async def task(self, task_guid: str) -> None:
        """Print a task's cell, state and outcome."""
        if not task_guid:
            self.ui.say_incorrect_usage("")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            task = await self.task_examiner.task_status(task_guid)
        except TaskNotFoundError:
            self.ui.say_line(red(f"No task '{task_guid}' was found"))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)
        except LatticeError as e:
            self.ui.say_line(red(f"Error fetching task result: {e}"))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)

        fields = Table.grid(padding=(0, 2, 0, 0))
        fields.add_column(no_wrap=True)
        fields.add_column()
        fields.add_row("Task Name", task.task_guid)
        fields.add_row("Cell ID", task.cell_id)
        if task.state in IN_PROGRESS_STATES:
            fields.add_row("Status", yellow(task.state.value))
        elif task.state in FINISHED_STATES and not task.failed:
            fields.add_row("Status", green(task.state.value))
            fields.add_row("Result", task.result)
        elif task.failed:
            fields.add_row("Status", red(task.state.value))
            fields.add_row("Failure Reason", task.failure_reason)
        self.ui.print(fields)

    async def cancel_task(self, task_guid: str) -> None:
        if not task_guid:
            self.ui.say_incorrect_usage("Please input a valid TASK_GUID")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            await self.task_runner.cancel_task(task_guid)
        except LatticeError as e:
            self.ui.say_line(red(f"Error cancelling {task_guid}: {e}"))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)
        self.ui.say_line(green("OK"))

    async def delete_task(self, task_guid: str) -> None:
        if not task_guid:
            self.ui.say_incorrect_usage("Please input a valid TASK_GUID")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        try:
            await self.task_runner.delete_task(task_guid)
        except LatticeError as e:
            self.ui.say_line(red(f"Error deleting {task_guid}: {e}"))
            self.exit_handler.exit(ExitCode.COMMAND_FAILED)
        self.ui.say_line(green("OK"))
