"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from flowchord.cli import cli
from flowchord.logging import enable_logging
from tests.conftest import approval_workflow, chain, node


@pytest.fixture(autouse=True)
def _restore_console():
    yield
    enable_logging()


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "flow.json"
    workflow = chain(
        node("start", "start"),
        node("agent", "agent", instructions="about {{input.topic}}"),
        node("end", "end"),
        workflow_id="wf-cli",
    )
    path.write_text(json.dumps(workflow.to_dict()), encoding="utf-8")
    return path


class TestRunCommand:
    """Tests for `flowchord run`."""

    def test_quiet_prints_result(self, workflow_file):
        """--quiet prints only the result JSON."""
        result = CliRunner().invoke(
            cli, ["run", str(workflow_file), "--input", '{"topic": "tides"}', "--mock", "canned", "-q"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert payload["status"] == "completed"
        assert payload["output"] == "canned"

    def test_prints_events(self, workflow_file):
        """Without --quiet each event is echoed with its sequence number."""
        result = CliRunner().invoke(cli, ["run", str(workflow_file), "--mock", "canned"])

        assert result.exit_code == 0
        assert "[0] workflow_started" in result.output
        assert "node_completed agent" in result.output

    def test_waiting_run_exits_zero(self, tmp_path):
        """A run that stops at an approval reports pendingAuth."""
        path = tmp_path / "approval.json"
        path.write_text(json.dumps(approval_workflow().to_dict()), encoding="utf-8")

        result = CliRunner().invoke(cli, ["run", str(path), "--input", '{"title": "Q3"}', "-q"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["status"] == "waiting-auth"
        assert payload["pendingAuth"]["message"] == "Publish Q3?"

    @pytest.mark.parametrize("raw", ["{nope", "[1, 2]"])
    def test_bad_input(self, workflow_file, raw):
        """--input must be a JSON object."""
        result = CliRunner().invoke(cli, ["run", str(workflow_file), "--input", raw])

        assert result.exit_code == 2
        assert "--input" in result.output

    def test_invalid_workflow_fails(self, tmp_path):
        """A workflow that cannot run exits 1 with the error."""
        path = tmp_path / "broken.json"
        broken = chain(node("start", "start"), node("h", "http"), workflow_id="wf-broken")
        path.write_text(json.dumps(broken.to_dict()), encoding="utf-8")

        result = CliRunner().invoke(cli, ["run", str(path), "-q"])

        assert result.exit_code == 1
        assert json.loads(result.output)["success"] is False
