"""Tests for formatting helpers and the terminal UI."""

from datetime import UTC, datetime, timedelta

import pytest
from rich.text import Text

from conftest import make_ui, output_of
from ltc.app_examiner import AppInfo, InstanceInfo
from ltc.presentation import (
    INSTANCE_STATE_WIDTH,
    byte_size,
    color_instance_state,
    color_instances,
    format_duration,
    pad_and_color_instance_state,
    uptime,
)


class TestColorInstances:
    """Tests for running/desired coloring."""

    @pytest.mark.parametrize(
        ("running", "desired", "style"),
        [
            (0, 0, "green"),
            (3, 3, "green"),
            (0, 2, "red"),
            (1, 3, "yellow"),
            (4, 3, "yellow"),
        ],
    )
    def test_style(self, running, desired, style):
        """Test the color for each running/desired relation."""
        app = AppInfo(process_guid="app", actual_running_instances=running, desired_instances=desired)
        text = color_instances(app)
        assert text.plain == f"{running}/{desired}"
        assert text.style == style


class TestColorInstanceState:
    """Tests for instance state coloring."""

    @pytest.mark.parametrize(
        ("state", "placement_error", "style"),
        [
            ("RUNNING", "", "green"),
            ("CLAIMED", "", "yellow"),
            ("UNCLAIMED", "", "cyan"),
            ("UNCLAIMED", "insufficient resources", "red"),
            ("CRASHED", "", "red"),
            ("INVALID", "", "red"),
        ],
    )
    def test_style(self, state, placement_error, style):
        """Test the color of each state."""
        instance = InstanceInfo(state=state, placement_error=placement_error)
        assert color_instance_state(instance).style == style

    def test_padding(self):
        """Test that states are padded to the widest state."""
        text = pad_and_color_instance_state(InstanceInfo(state="RUNNING"))
        assert text.plain == "RUNNING".ljust(INSTANCE_STATE_WIDTH)


class TestByteSize:
    """Tests for human readable sizes."""

    @pytest.mark.parametrize(
        ("num_bytes", "expected"),
        [
            (0, "0"),
            (512, "512B"),
            (1024, "1K"),
            (1536 * 1024, "1.5M"),
            (3 * 1024**3, "3G"),
            (2 * 1024**4, "2T"),
        ],
    )
    def test_units(self, num_bytes, expected):
        """Test unit selection and rounding."""
        assert byte_size(num_bytes) == expected


class TestDurations:
    """Tests for uptime formatting."""

    def test_format_duration(self):
        """Test hours, minutes and seconds rendering."""
        assert format_duration(timedelta(seconds=45)) == "45s"
        assert format_duration(timedelta(minutes=2, seconds=3)) == "2m3s"
        assert format_duration(timedelta(hours=1, seconds=5)) == "1h0m5s"

    def test_negative_duration_is_zero(self):
        """Test that clock skew never renders a negative uptime."""
        assert format_duration(timedelta(seconds=-5)) == "0s"

    def test_uptime_from_nanoseconds(self):
        """Test uptime from a nanosecond timestamp."""
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        since = (int(now.timestamp()) - 187) * 1_000_000_000
        assert uptime(since, now) == "3m7s"


class TestTerminalUI:
    """Tests for line output and frame rendering."""

    def test_say_line_prints_literally(self):
        """Test that markup-like user text is not interpreted."""
        ui = make_ui()
        ui.say_line("[bold]not markup[/bold]")
        assert output_of(ui) == "[bold]not markup[/bold]\n"

    def test_incorrect_usage(self):
        """Test the usage error format."""
        ui = make_ui()
        ui.say_incorrect_usage("App Name required")
        ui.say_incorrect_usage("")
        assert output_of(ui) == "Incorrect Usage: App Name required\nIncorrect Usage\n"

    def test_render_frame_counts_lines(self):
        """Test that a frame reports how many lines it drew."""
        ui = make_ui()
        lines = ui.render_frame(Text("cell-0: empty"), Text("cell-1: ••"))
        assert lines == 2
        assert output_of(ui) == "cell-0: empty\ncell-1: ••\n"

    def test_render_frame_clears_on_terminal(self):
        """Test clear-to-end-of-line per line and clear-to-end-of-display after."""
        ui = make_ui(terminal=True)
        ui.render_frame(Text("one"), Text("two"))
        assert output_of(ui) == "one\x1b[0K\ntwo\x1b[0K\n\x1b[J"

    def test_cursor_controls_only_on_terminal(self):
        """Test that cursor codes are not written to plain files."""
        plain = make_ui()
        plain.cursor_up(2)
        plain.hide_cursor()
        assert output_of(plain) == ""

        terminal = make_ui(terminal=True)
        terminal.cursor_up(2)
        assert output_of(terminal) == "\x1b[2A"

    @pytest.mark.asyncio
    async def test_prompt_reads_line(self):
        """Test that a prompt returns the typed line without its newline."""
        ui = make_ui(input_text="admin\n")
        assert await ui.prompt("Username") == "admin"
        assert output_of(ui) == "Username: "

    @pytest.mark.asyncio
    async def test_password_prompt_without_tty(self):
        """Test that a password prompt works on a non-terminal input."""
        ui = make_ui(input_text="hunter2\n")
        assert await ui.prompt_for_password("Password") == "hunter2"
        assert output_of(ui) == "Password: \n"
