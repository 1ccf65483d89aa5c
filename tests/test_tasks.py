"""Tests for task submission, inspection, cancellation and deletion."""

import json

import pytest
import typer

from conftest import output_of
from ltc.commands.task import TaskCommands
from ltc.common.exceptions import (
    AlreadyExistsError,
    InvariantViolationError,
    ReservedNameError,
    TaskNotFoundError,
)
from ltc.common.models import TaskResponse
from ltc.task_examiner import TaskExaminer
from ltc.task_runner import TaskRunner


def task(guid="task-guid-1", state="COMPLETED", **fields):
    return TaskResponse(task_guid=guid, state=state, **fields)


@pytest.fixture
def task_examiner(mock_receptor_client):
    """Create a task examiner over the mock receptor."""
    return TaskExaminer(mock_receptor_client)


@pytest.fixture
def task_runner(mock_receptor_client, task_examiner):
    """Create a task runner over the mock receptor."""
    return TaskRunner(mock_receptor_client, task_examiner)


@pytest.fixture
def commands(ui, task_runner, task_examiner, exit_handler):
    """Create task commands."""
    return TaskCommands(ui, task_runner, task_examiner, exit_handler)


class TestTaskExaminer:
    """Tests for task lookups."""

    @pytest.mark.asyncio
    async def test_list_sorted(self, mock_receptor_client, task_examiner):
        """Test that tasks are sorted by guid."""
        mock_receptor_client.tasks.return_value = [task("b"), task("a")]

        assert [t.task_guid for t in await task_examiner.list_tasks()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_not_found(self, mock_receptor_client, task_examiner):
        """Test the not-found message."""
        mock_receptor_client.get_task.side_effect = TaskNotFoundError("TaskNotFound")

        with pytest.raises(TaskNotFoundError, match="Task not found."):
            await task_examiner.task_status("ghost")


class TestTaskRunner:
    """Tests for task lifecycle operations."""

    @pytest.mark.asyncio
    async def test_submit(self, mock_receptor_client, task_runner):
        """Test that a task is created after the domain is upserted."""
        guid = await task_runner.submit_task(json.dumps({"task_guid": "t1", "action": {"run": {"path": "ls"}}}))

        assert guid == "t1"
        mock_receptor_client.upsert_domain.assert_awaited_once_with("lattice", 0)
        request = mock_receptor_client.create_task.await_args.args[0]
        assert request.to_wire()["action"] == {"run": {"path": "ls"}}

    @pytest.mark.asyncio
    async def test_submit_reserved(self, mock_receptor_client, task_runner):
        """Test that the debug guid is rejected."""
        with pytest.raises(ReservedNameError) as exc_info:
            await task_runner.submit_task('{"task_guid": "lattice-debug"}')

        assert exc_info.value.details["task_guid"] == "lattice-debug"
        mock_receptor_client.create_task.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submit_existing(self, mock_receptor_client, task_runner):
        """Test that a guid can only be submitted once."""
        mock_receptor_client.tasks.return_value = [task("t1", state="RUNNING")]

        with pytest.raises(AlreadyExistsError, match="t1 has already been submitted"):
            await task_runner.submit_task('{"task_guid": "t1"}')

    @pytest.mark.asyncio
    async def test_delete_requires_completed(self, mock_receptor_client, task_runner):
        """Test that only completed tasks are deleted."""
        mock_receptor_client.get_task.return_value = task(state="PENDING")

        with pytest.raises(InvariantViolationError, match="task-guid-1"):
            await task_runner.delete_task("task-guid-1")

        mock_receptor_client.delete_task.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_completed_is_noop(self, mock_receptor_client, task_runner):
        """Test that cancelling a finished task sends nothing."""
        mock_receptor_client.get_task.return_value = task(state="COMPLETED")

        assert await task_runner.cancel_task("task-guid-1") is False
        mock_receptor_client.cancel_task.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["PENDING", "CLAIMED", "RUNNING"])
    async def test_cancel_in_progress(self, mock_receptor_client, task_runner, state):
        """Test that unfinished tasks are cancelled."""
        mock_receptor_client.get_task.return_value = task(state=state)

        assert await task_runner.cancel_task("task-guid-1") is True
        mock_receptor_client.cancel_task.assert_awaited_once_with("task-guid-1")

    @pytest.mark.asyncio
    async def test_cancel_resolving(self, mock_receptor_client, task_runner):
        """Test that a resolving task cannot be cancelled."""
        mock_receptor_client.get_task.return_value = task(state="RESOLVING")

        with pytest.raises(InvariantViolationError, match="Unable to cancel RESOLVING task"):
            await task_runner.cancel_task("task-guid-1")


class TestTaskCommands:
    """Tests for the task commands."""

    @pytest.mark.asyncio
    async def test_delete_completed(self, commands, ui, mock_receptor_client):
        """Test deleting a completed task."""
        mock_receptor_client.get_task.return_value = task(state="COMPLETED")

        await commands.delete_task("task-guid-1")

        assert output_of(ui) == "OK\n"
        mock_receptor_client.delete_task.assert_awaited_once_with("task-guid-1")

    @pytest.mark.asyncio
    async def test_delete_pending(self, commands, ui, mock_receptor_client):
        """Test that deleting a pending task fails naming the guid."""
        mock_receptor_client.get_task.return_value = task(state="PENDING")

        with pytest.raises(typer.Exit) as exc_info:
            await commands.delete_task("task-guid-1")

        assert exc_info.value.exit_code == 14
        assert "Error deleting task-guid-1: task-guid-1 is not in COMPLETED state" in output_of(ui)

    @pytest.mark.asyncio
    async def test_cancel_completed_prints_ok(self, commands, ui, mock_receptor_client):
        """Test that cancelling a completed task reports success."""
        mock_receptor_client.get_task.return_value = task(state="COMPLETED")

        await commands.cancel_task("task-guid-1")

        assert output_of(ui) == "OK\n"

    @pytest.mark.asyncio
    async def test_task_completed(self, commands, ui, mock_receptor_client):
        """Test the status of a successful task."""
        mock_receptor_client.get_task.return_value = task(cell_id="cell-0", result="done")

        await commands.task("task-guid-1")

        out = output_of(ui)
        assert "Task Name" in out
        assert "cell-0" in out
        assert "COMPLETED" in out
        assert "Result" in out
        assert "done" in out

    @pytest.mark.asyncio
    async def test_task_failed(self, commands, ui, mock_receptor_client):
        """Test the status of a failed task."""
        mock_receptor_client.get_task.return_value = task(failed=True, failure_reason="exit status 1")

        await commands.task("task-guid-1")

        out = output_of(ui)
        assert "Failure Reason" in out
        assert "exit status 1" in out

    @pytest.mark.asyncio
    async def test_task_missing(self, commands, ui, mock_receptor_client):
        """Test the message for an unknown task."""
        mock_receptor_client.get_task.side_effect = TaskNotFoundError("TaskNotFound")

        with pytest.raises(typer.Exit) as exc_info:
            await commands.task("ghost")

        assert exc_info.value.exit_code == 14
        assert "No task 'ghost' was found" in output_of(ui)

    @pytest.mark.asyncio
    async def test_submit_file(self, commands, ui, tmp_path):
        """Test submitting a task file."""
        path = tmp_path / "task.json"
        path.write_text('{"task_guid": "t1"}')

        await commands.submit_task(str(path))

        assert "Successfully submitted t1" in output_of(ui)

    @pytest.mark.asyncio
    async def test_submit_failure_names_guid(self, commands, ui, mock_receptor_client, tmp_path):
        """Test that a rejected submission names the guid."""
        mock_receptor_client.tasks.return_value = [task("t1")]
        path = tmp_path / "task.json"
        path.write_text('{"task_guid": "t1"}')

        with pytest.raises(typer.Exit) as exc_info:
            await commands.submit_task(str(path))

        assert exc_info.value.exit_code == 14
        assert "Error submitting t1: t1 has already been submitted" in output_of(ui)
