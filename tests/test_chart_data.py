from datetime import date

from neuron_hub.core.burndown.chart_data import (
    build_chart_data,
    build_overall_snapshot_by_date,
    owner_burndowns,
    program_burndown,
    subcomponent_snapshot_by_date,
    workstream_burndown,
    workstream_snapshot_by_date,
)
from neuron_hub.core.io.load_program import load_program
from neuron_hub.core.model import BurnSnapshot, PointsPair, SubcomponentSnapshot, WorkstreamSnapshot
from neuron_hub.core.periods.burn_periods import fixed_clock, get_monthly_periods, make_period
from neuron_hub.core.snapshots.store import load_snapshot_file
from neuron_hub.core.validate.validate_program import validate_program

OCT_2026 = fixed_clock(date(2026, 10, 15))


def _program(path):
    program, errors = validate_program(load_program(path))
    assert errors == []
    return program


def test_scope_line_anchors_at_peak_scope():
    periods = get_monthly_periods(2026, 1, 2026, 4)
    by_date = {"2026-03": PointsPair(15, 3)}
    data = build_chart_data(periods, by_date, 10, 12, 15, make_period(2030, 1))

    assert [p.ideal for p in data] == [10, 7, 3, 0]
    assert data[0].scope_line == 15
    assert data[0].remaining == 15
    assert [p.remaining for p in data[1:]] == [None, 12, None]
    assert [p.scope_changed for p in data] == [False, False, True, False]
    assert not any(p.is_current for p in data)


def test_current_period_uses_live_values():
    periods = get_monthly_periods(2026, 1, 2026, 4)
    data = build_chart_data(periods, {}, 10, 6, 12, make_period(2026, 3))

    cur = data[2]
    assert cur.is_current
    assert cur.remaining == 6
    assert cur.label == "Mar '26 *"
    assert cur.scope_changed
    # live scope growth raises the peak for the whole chart
    assert data[0].remaining == 12
    assert data[0].scope_line == 12
    assert data[0].ideal == 10


def test_snapshot_wins_over_live_in_current_period():
    periods = get_monthly_periods(2026, 1, 2026, 3)
    data = build_chart_data(periods, {"2026-03": PointsPair(10, 8)}, 10, 1, 10, make_period(2026, 3))
    assert data[2].remaining == 2
    assert data[2].label == "Mar '26"
    assert data[2].is_current


def test_single_period_does_not_divide_by_zero():
    data = build_chart_data([make_period(2026, 1)], {}, 8, 8, 8, make_period(2026, 1))
    assert len(data) == 1
    assert data[0].ideal == 8
    assert data[0].scope_line == 8
    assert data[0].remaining == 8


def test_no_periods_gives_empty_series():
    assert build_chart_data([], {}, 8, 8, 8, make_period(2026, 1)) == []


def test_lines_never_go_negative():
    periods = get_monthly_periods(2026, 1, 2026, 6)
    data = build_chart_data(periods, {}, 0, 0, 0, make_period(2030, 1))
    assert all(p.ideal == 0 and p.scope_line == 0 for p in data)


def test_basic_program_remaining_only_at_start_and_now():
    program = _program("examples/program-basic.yaml")
    chart = program_burndown(program, [], OCT_2026)

    assert chart.total_points == 10
    assert chart.completed_points == 5
    keys = [p.date for p in chart.points]
    assert keys[0] == "2026-01"
    assert keys[-1] == "2028-11"

    cur = keys.index("2026-10")
    assert chart.points[cur].remaining == 5
    assert chart.points[cur].is_current
    assert chart.points[0].remaining == 10
    for i, p in enumerate(chart.points):
        if i not in (0, cur):
            assert p.remaining is None


def test_overall_snapshot_by_date_prefers_breakdowns():
    store = load_snapshot_file("examples/snapshots.yaml")
    by_date = build_overall_snapshot_by_date(store.all(), "PRG-NEURON")
    assert by_date == {"2026-06": PointsPair(20, 4), "2026-09": PointsPair(29, 15)}

    everything = build_overall_snapshot_by_date(store.all())
    assert everything["2026-09"] == PointsPair(79, 25)


def test_breakdown_without_subcomponents_uses_workstream_entry():
    snap = BurnSnapshot(
        program_id="P",
        date="2026-05",
        total_points=999,
        completed_points=999,
        workstream_data={
            "W1": WorkstreamSnapshot("W1", 10, 4),
            "W2": WorkstreamSnapshot("W2", 5, 1, {"S": SubcomponentSnapshot("S", 6, 2)}),
        },
    )
    assert build_overall_snapshot_by_date([snap]) == {"2026-05": PointsPair(16, 6)}


def test_workstream_and_subcomponent_adapters():
    snaps = load_snapshot_file("examples/snapshots.yaml").for_program("PRG-NEURON")
    assert workstream_snapshot_by_date(snaps, "WS-DATA") == {"2026-09": PointsPair(21, 12)}
    assert workstream_snapshot_by_date(snaps, "WS-NOPE") == {}
    assert subcomponent_snapshot_by_date(snaps, "WS-AI", "SC-COPILOT") == {"2026-09": PointsPair(8, 3)}
    assert subcomponent_snapshot_by_date(snaps, "WS-AI", "SC-INGEST") == {}


def test_program_burndown_with_history():
    program = _program("examples/program-full.yaml")
    snaps = load_snapshot_file("examples/snapshots.yaml").for_program(program.id)
    chart = program_burndown(program, snaps, OCT_2026)

    assert chart.total_points == 29
    assert chart.completed_points == 17
    assert len(chart.points) == 39
    assert chart.points[-1].date == "2029-03"

    by_key = {p.date: p for p in chart.points}
    first = chart.points[0]
    assert (first.remaining, first.ideal, first.scope_line) == (29, 24, 29)
    assert by_key["2026-06"].remaining == 16
    assert by_key["2026-06"].scope_changed
    assert by_key["2026-09"].remaining == 14
    assert by_key["2026-09"].scope_changed
    assert by_key["2026-10"].remaining == 12
    assert by_key["2026-10"].label == "Oct '26 *"
    assert not by_key["2026-10"].scope_changed
    assert by_key["2026-07"].remaining is None
    assert chart.points[-1].ideal == 0


def test_program_burndown_for_one_organization():
    program = _program("examples/program-full.yaml")
    snaps = load_snapshot_file("examples/snapshots.yaml").for_program(program.id)
    chart = program_burndown(program, snaps, OCT_2026, organization="ECLIPSE")

    assert chart.name == "Project Neuron (ECLIPSE)"
    assert (chart.total_points, chart.completed_points) == (8, 5)
    by_key = {p.date: p for p in chart.points}
    assert chart.points[0].remaining == 8
    assert by_key["2026-09"].remaining is None
    assert by_key["2026-10"].remaining == 3


def test_workstream_burndown():
    program = _program("examples/program-full.yaml")
    snaps = load_snapshot_file("examples/snapshots.yaml").for_program(program.id)
    ws = program.workstreams[0]
    chart = workstream_burndown(program, ws, snaps, OCT_2026)

    assert chart.id == "WS-DATA"
    assert (chart.total_points, chart.completed_points) == (21, 12)
    by_key = {p.date: p for p in chart.points}
    assert chart.points[0].remaining == 21
    assert by_key["2026-06"].remaining is None
    assert by_key["2026-09"].remaining == 9
    assert by_key["2026-10"].remaining == 9


def test_owner_burndowns():
    program = _program("examples/program-full.yaml")
    snaps = load_snapshot_file("examples/snapshots.yaml").for_program(program.id)

    ws_charts, sub_charts = owner_burndowns(program, "u-ana", snaps, OCT_2026)
    assert [c.id for c in ws_charts] == ["WS-DATA", "WS-AI"]
    # SC-LAKE has no subtasks, so no chart
    assert [(c.id, c.is_mine) for c in sub_charts] == [("SC-INGEST", True), ("SC-COPILOT", True)]

    ws_charts, sub_charts = owner_burndowns(program, "u-ben", snaps, OCT_2026)
    assert [c.id for c in ws_charts] == ["WS-DATA"]
    assert [(c.id, c.is_mine) for c in sub_charts] == [("SC-INGEST", False)]

    assert owner_burndowns(program, "nobody", snaps, OCT_2026) == ([], [])
