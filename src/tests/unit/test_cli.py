"""Tests for the navvault command line."""

import logging
from datetime import datetime, timedelta

import pytest
from typer.testing import CliRunner

from navvault.interfaces.cli import app as cli
from navvault.storage.mailbox import CrossProcessMailbox, MailboxLogHandler

runner = CliRunner()


@pytest.fixture
def invoke(app_group_dir, vault_dir, monkeypatch):
    """Run CLI commands against a temp app group with the fixture vault granted."""
    monkeypatch.setattr(cli, "_state", {})
    root = logging.getLogger()
    before = list(root.handlers)

    def _invoke(*args: str):
        return runner.invoke(cli.app, ["--app-group", str(app_group_dir), *args])

    result = _invoke("grant", str(vault_dir))
    assert result.exit_code == 0, result.output
    yield _invoke

    services = cli._state.get("services")
    if services is not None:
        services.close()
    for handler in list(root.handlers):
        if handler not in before and isinstance(handler, MailboxLogHandler):
            root.removeHandler(handler)


class TestTasks:
    """Tests for tasks commands."""

    def test_list(self, invoke):
        result = invoke("tasks", "list")

        assert result.exit_code == 0
        assert "Draft landing page" in result.output
        assert "Order seeds" in result.output

    def test_status(self, invoke, website_note):
        result = invoke("tasks", "status", "100", "done")

        assert result.exit_code == 0
        assert "- [x] Draft landing page" in website_note.read_text()

    def test_status_bad_value(self, invoke):
        result = invoke("tasks", "status", "100", "finished")

        assert result.exit_code != 0

    def test_status_unknown_task(self, invoke):
        result = invoke("tasks", "status", "424242", "done")

        assert result.exit_code == 1
        assert "E024" in result.output

    def test_add(self, invoke, garden_note):
        result = invoke(
            "tasks", "add", "Water roses", "--project", "1600000000", "--tag", "summer"
        )

        assert result.exit_code == 0
        assert "Water roses #summer" in garden_note.read_text()

    def test_widget_toggle_then_drain(self, invoke, website_note, app_group_dir):
        invoke("tasks", "list")
        cli._services().tasks.publish_widget_snapshot()

        assert invoke("widget", "toggle", "100").exit_code == 0
        result = invoke("tasks", "drain")

        assert result.exit_code == 0
        assert "Applied 1 task updates" in result.output
        assert "- [x] Draft landing page" in website_note.read_text()


class TestActivities:
    """Tests for activity commands."""

    def test_add_and_latest(self, invoke):
        at = (datetime.now() - timedelta(days=1)).replace(microsecond=0)
        assert invoke("activity", "add", "meal", "--at", at.isoformat()).exit_code == 0

        result = invoke("activity", "latest", "5")

        assert result.exit_code == 0
        assert at.strftime("%Y-%m-%d %H:%M:%S") in result.output
        assert "Meal" in result.output

    def test_latest_from_fixed_time(self, invoke):
        """Old entries are listed when looking back from a time near them."""
        assert invoke("activity", "add", "wake", "--at", "2024-05-01T07:00:00").exit_code == 0

        result = invoke("activity", "latest", "5", "--now", "2024-05-20T12:00:00")

        assert result.exit_code == 0
        assert "2024-05-01 07:00:00" in result.output

    def test_latest_bad_now(self, invoke):
        result = invoke("activity", "latest", "--now", "yesterday")

        assert result.exit_code != 0

    def test_unknown_type(self, invoke):
        result = invoke("activity", "add", "nap")

        assert result.exit_code != 0

    def test_rm_missing(self, invoke):
        result = invoke("activity", "rm", "meal", "2024-05-01T12:00:00")

        assert result.exit_code == 0
        assert "No matching activity" in result.output

    def test_widget_queue_then_drain(self, invoke):
        assert invoke("widget", "activity", "exercise", "--queue").exit_code == 0
        assert len(cli._services().mailbox.pending_activities()) == 1

        result = invoke("tasks", "drain")

        assert "wrote 1 activities" in result.output
        assert cli._services().mailbox.pending_activities() == []


class TestCalendar:
    """Tests for calendar commands."""

    def test_add_and_day(self, invoke):
        result = invoke(
            "calendar", "add", "Dentist", "--start", "2024-05-10T09:00", "--remind", "15"
        )
        assert result.exit_code == 0

        result = invoke("calendar", "day", "2024-05-10")

        assert "Dentist" in result.output

    def test_rm_unknown(self, invoke):
        result = invoke("calendar", "rm", "1", "--year", "2024")

        assert result.exit_code == 1
        assert "event not found" in result.output

    def test_reconcile(self, invoke):
        invoke("calendar", "add", "Standup", "--start", "2024-05-10T09:00")

        result = invoke("calendar", "reconcile", "2024")

        assert result.exit_code == 0
        assert "1 live events in 2024" in result.output


class TestLogs:
    """Tests for the logs command."""

    def test_logs_show_persisted_lines(self, invoke, app_group_dir):
        invoke("tasks", "status", "424242", "done")

        result = invoke("logs")

        assert result.exit_code == 0
        assert "main: [ERROR] [E024] Task not found: 424242" in result.output

    def test_clear(self, invoke, app_group_dir):
        invoke("logs", "--clear")

        mailbox = CrossProcessMailbox(db_path=app_group_dir / "mailbox.db")
        try:
            assert mailbox.logs() == []
        finally:
            mailbox.close()
