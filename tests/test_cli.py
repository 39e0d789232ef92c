"""Tests for the operator CLI."""

from click.testing import CliRunner

from unified_index.cli import cli
from unified_index.services import ingestion_queue_service


def test_enqueue_command(db):
    runner = CliRunner()

    result = runner.invoke(
        cli,
        ["enqueue", "--source", "craft", "--event-type", "document.upsert", "--external-id", "d1",
         "--payload", '{"title": "Minutes"}'],
    )

    assert result.exit_code == 0
    assert "Enqueued item" in result.output
    assert ingestion_queue_service.get_queue_stats(db)["craft"]["pending"] == 1


def test_enqueue_command_rejects_bad_input(db):
    runner = CliRunner()

    bad_json = runner.invoke(
        cli, ["enqueue", "--source", "craft", "--event-type", "x", "--external-id", "1", "--payload", "{"]
    )
    bad_source = runner.invoke(cli, ["enqueue", "--source", "jira", "--event-type", "x", "--external-id", "1"])

    assert bad_json.exit_code == 1
    assert "Invalid payload" in bad_json.output
    assert bad_source.exit_code == 1


def test_rerun_and_run_status_commands(db):
    runner = CliRunner()

    rerun = runner.invoke(cli, ["rerun", "project_linking"])
    unknown = runner.invoke(cli, ["rerun", "reindex"])
    bad_id = runner.invoke(cli, ["run-status", "not-a-uuid"])

    assert rerun.exit_code == 0
    assert "project_linking run" in rerun.output
    assert "completed" in rerun.output
    assert unknown.exit_code == 1
    assert bad_id.exit_code == 1


def test_sync_status_command(db):
    result = CliRunner().invoke(cli, ["sync-status"])

    assert result.exit_code == 0
    assert "teamwork: last event never" in result.output
    assert "files:" in result.output
