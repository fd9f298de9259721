import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from neuron_hub.cli import app


runner = CliRunner()


@pytest.fixture(autouse=True)
def _pin_today(monkeypatch):
    monkeypatch.setenv("NEURON_HUB_NOW", "2026-10-15")


def test_cli_snapshot_is_idempotent(tmp_path):
    out = tmp_path / "snaps.yaml"
    for _ in range(2):
        r = runner.invoke(app, ["snapshot", "examples/program-full.yaml", "--snapshots", str(out)])
        assert r.exit_code == 0, r.output
        assert "OK: saved PRG-NEURON 2026-10 (17/29 pts, 58.6%)" in r.stdout

    r = runner.invoke(app, ["snapshots", "--snapshots", str(out), "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert [(s["program_id"], s["date"]) for s in payload["snapshots"]] == [("PRG-NEURON", "2026-10")]
    assert payload["snapshots"][0]["workstream_data"]["WS-DATA"]["completed_points"] == 12


def test_cli_snapshot_file_from_environment(tmp_path, monkeypatch):
    out = tmp_path / "from-env.json"
    monkeypatch.setenv("NEURON_HUB_SNAPSHOT_FILE", str(out))
    r = runner.invoke(app, ["snapshot", "examples/program-basic.yaml"])
    assert r.exit_code == 0, r.output
    assert out.exists()
    assert json.loads(out.read_text(encoding="utf-8"))["snapshots"][0]["total_points"] == 10


def test_cli_snapshot_keeps_history(tmp_path):
    out = tmp_path / "snaps.yaml"
    out.write_text(Path("examples/snapshots.yaml").read_text(encoding="utf-8"), encoding="utf-8")
    r = runner.invoke(app, ["snapshot", "examples/program-full.yaml", "--snapshots", str(out)])
    assert r.exit_code == 0, r.output

    r = runner.invoke(app, ["snapshots", "--snapshots", str(out), "--program", "PRG-NEURON"])
    assert r.exit_code == 0
    lines = r.stdout.strip().splitlines()
    assert [line.split()[1] for line in lines] == ["2026-06", "2026-09", "2026-10"]


def test_cli_snapshots_empty(tmp_path):
    r = runner.invoke(app, ["snapshots", "--snapshots", str(tmp_path / "none.yaml")])
    assert r.exit_code == 0
    assert "No snapshots." in r.stdout


def test_cli_snapshots_bad_file(tmp_path):
    bad = tmp_path / "snaps.yaml"
    bad.write_text("snapshots:\n  - program_id: P\n    date: soon\n", encoding="utf-8")
    r = runner.invoke(app, ["snapshots", "--snapshots", str(bad)])
    assert r.exit_code == 1
    assert "E_INVALID_DATE_KEY" in r.output
