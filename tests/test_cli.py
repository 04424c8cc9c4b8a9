"""Tests for the shardwise CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest
import yaml
from click.testing import CliRunner

from shardwise.cli import _apply_overrides, _config_to_dict, cli
from shardwise.config import ShardwiseConfig
from shardwise.history.models import HistoryEntry, HistorySnapshot
from shardwise.history.store import HistoryStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project whose runner command always succeeds."""
    tests_dir = tmp_path / "tests"
    tests_dir.mkdir()
    (tests_dir / "test_alpha.py").write_text(
        "import time\n\ndef test_a():\n    time.sleep(0)\n\ndef test_b():\n    pass\n"
    )
    (tests_dir / "test_beta.py").write_text("def test_a():\n    pass\n")
    (tests_dir / "test_gamma.py").write_text("def test_a():\n    pass\n")
    _write_config(tmp_path, {"sharding": {"shard_count": 2}, "execution": {"command": ["echo"]}})
    return tmp_path


def _write_config(root: Path, data: dict[str, Any]) -> None:
    (root / ".shardwise.yml").write_text(yaml.safe_dump(data), encoding="utf-8")


# ── Helpers ─────────────────────────────────────────────────────────


def test_apply_overrides_ignores_none() -> None:
    config = ShardwiseConfig(root=".")
    _apply_overrides(config, shard_count=None, per_shard_timeout=12.0, global_timeout=None)
    assert config.sharding.shard_count == 4
    assert config.execution.per_shard_timeout == 12.0
    assert config.execution.global_timeout is None


def test_config_to_dict_drops_raw() -> None:
    data = _config_to_dict(ShardwiseConfig(root=".", raw={"x": 1}))
    assert "raw" not in data
    assert data["sharding"]["shard_count"] == 4


# ── plan ────────────────────────────────────────────────────────────


class TestPlanCommand:
    def test_plan_json(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["plan", "--path", str(project), "--json-output"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["shard_count"] == 2
        files = sorted(f for shard in data["shards"] for f in shard["files"])
        assert files == ["tests/test_alpha.py", "tests/test_beta.py", "tests/test_gamma.py"]

    def test_plan_shard_count_override(self, project: Path) -> None:
        result = CliRunner().invoke(
            cli, ["--ci", "plan", "--path", str(project), "--shard-count", "3"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["shard_count"] == 3

    def test_plan_table(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["plan", "--path", str(project)])
        assert result.exit_code == 0, result.output
        assert "Shard Plan" in result.output
        assert "Estimated makespan" in result.output

    def test_plan_output_file(self, project: Path) -> None:
        output = project / "plan.json"
        result = CliRunner().invoke(
            cli, ["plan", "--path", str(project), "--output", str(output)]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["format_version"] == 1

    def test_plan_single_shard_files(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["plan", "--path", str(project), "--shard-id", "1"])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0] == "tests/test_alpha.py"

    def test_plan_unknown_shard_id(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["plan", "--path", str(project), "--shard-id", "9"])
        assert result.exit_code == 2
        assert "shard_id" in result.output

    def test_plan_invalid_shard_count(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["plan", "--path", str(project), "--shard-count", "0"])
        assert result.exit_code == 1
        assert "shard_count" in result.output


# ── run ─────────────────────────────────────────────────────────────


class TestRunCommand:
    def test_run_json_success(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["--ci", "run", "--path", str(project)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["summary"]["shard_count"] == 2
        assert HistoryStore(project).load().version == 1

    def test_run_failure_exits_nonzero(self, project: Path) -> None:
        _write_config(project, {"execution": {"command": ["false"]}})
        result = CliRunner().invoke(cli, ["--ci", "run", "--path", str(project)])

        assert result.exit_code == 1
        assert '"success": false' in result.output

    def test_run_writes_report(self, project: Path) -> None:
        report = project / "out" / "report.json"
        result = CliRunner().invoke(
            cli, ["run", "--path", str(project), "--report", str(report)]
        )

        assert result.exit_code == 0, result.output
        assert "All shards passed" in result.output
        assert json.loads(report.read_text())["summary"]["unit_count"] == 3

    def test_run_from_plan_file(self, project: Path) -> None:
        plan_file = project / "plan.json"
        runner = CliRunner()
        runner.invoke(cli, ["plan", "--path", str(project), "--output", str(plan_file)])

        result = runner.invoke(
            cli, ["--ci", "run", "--path", str(project), "--plan", str(plan_file)]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["summary"]["unit_count"] == 3

    def test_run_invalid_config(self, project: Path) -> None:
        _write_config(project, {"execution": {"per_shard_timeout": -1}})
        result = CliRunner().invoke(cli, ["run", "--path", str(project)])

        assert result.exit_code == 1
        assert "per_shard_timeout" in result.output
        assert not HistoryStore(project).exists()


# ── history ─────────────────────────────────────────────────────────


class TestHistoryCommands:
    def test_show_without_history(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["history", "show", "--path", str(project)])
        assert result.exit_code == 0
        assert "No history recorded yet" in result.output

    def test_show_json(self, project: Path) -> None:
        snapshot = HistorySnapshot(version=4)
        snapshot.record("tests/test_beta.py", HistoryEntry(2.0, "2026-01-01", True))
        HistoryStore(project).save(snapshot)

        result = CliRunner().invoke(
            cli, ["history", "show", "--path", str(project), "--json-output"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["version"] == 4

    def test_show_table(self, project: Path) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("tests/test_beta.py", HistoryEntry(2.0, "2026-01-01", True))
        HistoryStore(project).save(snapshot)

        result = CliRunner().invoke(cli, ["history", "show", "--path", str(project)])

        assert result.exit_code == 0, result.output
        assert "tests/test_beta.py" in result.output

    def test_prune_removes_stale_records(self, project: Path) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("tests/test_beta.py", HistoryEntry(2.0, "2026-01-01", True))
        snapshot.record("tests/test_deleted.py", HistoryEntry(2.0, "2026-01-01", True))
        HistoryStore(project).save(snapshot)

        result = CliRunner().invoke(cli, ["history", "prune", "--path", str(project)])

        assert result.exit_code == 0, result.output
        assert "Pruned 1" in result.output
        assert set(HistoryStore(project).load().units) == {"tests/test_beta.py"}

    def test_prune_keeps_records_of_skipped_files(self, project: Path) -> None:
        (project / "tests" / "test_wip.py").write_text("def test_a(:\n    pass\n")
        snapshot = HistorySnapshot()
        snapshot.record("tests/test_beta.py", HistoryEntry(2.0, "2026-01-01", True))
        snapshot.record("tests/test_wip.py", HistoryEntry(3.0, "2026-01-01", True))
        snapshot.record("tests/test_deleted.py", HistoryEntry(2.0, "2026-01-01", True))
        HistoryStore(project).save(snapshot)

        result = CliRunner().invoke(cli, ["history", "prune", "--path", str(project)])

        assert result.exit_code == 0, result.output
        assert "Pruned 1" in result.output
        assert set(HistoryStore(project).load().units) == {
            "tests/test_beta.py",
            "tests/test_wip.py",
        }

    def test_prune_nothing_stale(self, project: Path) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("tests/test_beta.py", HistoryEntry(2.0, "2026-01-01", True))
        HistoryStore(project).save(snapshot)

        result = CliRunner().invoke(cli, ["history", "prune", "--path", str(project)])

        assert "No stale history records" in result.output

    def test_clear(self, project: Path) -> None:
        HistoryStore(project).save(HistorySnapshot())
        result = CliRunner().invoke(cli, ["history", "clear", "--path", str(project), "--yes"])
        assert result.exit_code == 0
        assert not HistoryStore(project).exists()


# ── config ──────────────────────────────────────────────────────────


class TestConfigCommands:
    def test_validate_ok(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["config", "validate", "--path", str(project)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_validate_errors(self, project: Path) -> None:
        _write_config(project, {"sharding": {"shard_count": 0, "framework": "nose"}})
        result = CliRunner().invoke(cli, ["config", "validate", "--path", str(project)])

        assert result.exit_code == 1
        assert "Found 2 configuration error(s)" in result.output

    def test_validate_unparseable(self, project: Path) -> None:
        (project / ".shardwise.yml").write_text("sharding: [", encoding="utf-8")
        result = CliRunner().invoke(cli, ["config", "validate", "--path", str(project)])
        assert result.exit_code == 1
        assert "not valid YAML" in result.output

    def test_show_json(self, project: Path) -> None:
        result = CliRunner().invoke(
            cli, ["config", "show", "--path", str(project), "--json-output"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["sharding"]["shard_count"] == 2
        assert data["execution"]["command"] == ["echo"]

    def test_show_yaml(self, project: Path) -> None:
        result = CliRunner().invoke(cli, ["config", "show", "--path", str(project)])
        assert result.exit_code == 0, result.output
        assert "shard_count: 2" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "shardwise" in result.output
