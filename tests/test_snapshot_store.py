import threading
from datetime import date

import pytest

from neuron_hub.core.errors import HubLoadError, SnapshotError
from neuron_hub.core.io.load_program import load_program
from neuron_hub.core.model import BurnSnapshot
from neuron_hub.core.periods.burn_periods import fixed_clock, make_period
from neuron_hub.core.snapshots.store import (
    SnapshotStore,
    capture_snapshot,
    load_snapshot_file,
    save_monthly_snapshot,
)
from neuron_hub.core.validate.validate_program import validate_program

OCT_2026 = fixed_clock(date(2026, 10, 15))


def _full_program():
    program, errors = validate_program(load_program("examples/program-full.yaml"))
    assert errors == []
    return program


def _snap(date_key, total=10, completed=0, program_id="P"):
    return BurnSnapshot(program_id=program_id, date=date_key, total_points=total, completed_points=completed)


def test_capture_snapshot_breaks_down_by_workstream():
    snap = capture_snapshot(_full_program(), make_period(2026, 10))
    assert snap.program_id == "PRG-NEURON"
    assert snap.date == "2026-10"
    assert (snap.total_points, snap.completed_points) == (29, 17)
    assert snap.percent_complete == pytest.approx(17 / 29 * 100)

    data = snap.workstream_data["WS-DATA"]
    assert (data.total_points, data.completed_points) == (21, 12)
    assert data.subcomponents["SC-LAKE"].total_points == 0
    ai = snap.workstream_data["WS-AI"]
    assert (ai.total_points, ai.completed_points) == (8, 5)


def test_upsert_overwrites_same_month():
    store = SnapshotStore()
    store.upsert(_snap("2026-10", completed=2))
    store.upsert(_snap("2026-10", completed=7))
    assert len(store) == 1
    assert store.latest("P").completed_points == 7


def test_save_is_idempotent_for_current_month():
    store = SnapshotStore()
    program = _full_program()
    save_monthly_snapshot(store, program, OCT_2026)
    save_monthly_snapshot(store, program, OCT_2026)
    assert len(store) == 1
    assert store.latest("PRG-NEURON").date == "2026-10"


def test_save_rejects_other_months():
    store = SnapshotStore()
    with pytest.raises(SnapshotError) as exc:
        store.save(_snap("2026-09"), OCT_2026)
    assert exc.value.code == "E_SNAPSHOT_NOT_CURRENT"
    assert len(store) == 0


def test_concurrent_saves_keep_one_row():
    store = SnapshotStore()
    threads = [
        threading.Thread(target=store.save, args=(_snap("2026-10", completed=i), OCT_2026)) for i in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store) == 1


def test_for_program_filters_and_sorts():
    store = SnapshotStore(
        [_snap("2026-09"), _snap("2026-03"), _snap("2026-06"), _snap("2026-06", program_id="Q")]
    )
    assert [s.date for s in store.for_program("P")] == ["2026-03", "2026-06", "2026-09"]
    assert [s.date for s in store.for_program("P", date_from="2026-04")] == ["2026-06", "2026-09"]
    assert [s.date for s in store.for_program("P", date_to="2026-06")] == ["2026-03", "2026-06"]
    assert store.for_program("missing") == []
    assert store.latest("missing") is None


@pytest.mark.parametrize("name", ["snaps.yaml", "snaps.json"])
def test_dump_and_reload(tmp_path, name):
    store = SnapshotStore()
    save_monthly_snapshot(store, _full_program(), OCT_2026)
    store.upsert(_snap("2026-09", total=4, completed=1))

    path = tmp_path / "nested" / name
    store.dump(str(path))
    reloaded = load_snapshot_file(str(path))

    assert len(reloaded) == 2
    snap = reloaded.latest("PRG-NEURON")
    assert (snap.total_points, snap.completed_points) == (29, 17)
    assert snap.workstream_data["WS-AI"].subcomponents["SC-COPILOT"].completed_points == 5
    assert reloaded.latest("P").workstream_data is None


def test_load_example_snapshots():
    store = load_snapshot_file("examples/snapshots.yaml")
    assert len(store) == 3
    assert [s.date for s in store.for_program("PRG-NEURON")] == ["2026-06", "2026-09"]


def test_missing_file_is_empty_store(tmp_path):
    assert len(load_snapshot_file(str(tmp_path / "none.yaml"))) == 0


def test_load_rejects_bad_date_key(tmp_path):
    p = tmp_path / "snaps.yaml"
    p.write_text("snapshots:\n  - program_id: P\n    date: '2026-9'\n", encoding="utf-8")
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_INVALID_DATE_KEY"
    assert exc.value.path == "snapshots[0].date"


def test_load_rejects_bad_numbers(tmp_path):
    p = tmp_path / "snaps.json"
    p.write_text('{"snapshots": [{"program_id": "P", "date": "2026-09", "total_points": "ten"}]}', encoding="utf-8")
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_INVALID_TYPE"


def test_load_rejects_bad_top_level(tmp_path):
    p = tmp_path / "snaps.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_INVALID_TOP_LEVEL"


def test_load_rejects_unsupported_format(tmp_path):
    p = tmp_path / "snaps.txt"
    p.write_text("hello", encoding="utf-8")
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_UNSUPPORTED_FORMAT"


@pytest.mark.parametrize("value", [".inf", "-.inf", ".nan"])
def test_load_rejects_non_finite_numbers(tmp_path, value):
    p = tmp_path / "snaps.yaml"
    p.write_text(
        f"snapshots:\n  - program_id: P\n    date: '2026-09'\n    total_points: {value}\n",
        encoding="utf-8",
    )
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_INVALID_TYPE"
    assert exc.value.path == "snapshots[0].total_points"


def test_load_undecodable_snapshot_file(tmp_path):
    p = tmp_path / "snaps.yaml"
    p.write_bytes(b"\xff\xfe bad")
    with pytest.raises(HubLoadError) as exc:
        load_snapshot_file(str(p))
    assert exc.value.code == "E_FILE_READ"
