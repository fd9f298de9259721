"""Burndown chart series.

Three lines per chart:
  - ideal:      straight decline from the starting total to zero
  - scope_line: the same decline anchored at the peak scope seen on the timeline
  - remaining:  actual remaining work from snapshots (or live data for the
                current month); None where nothing was recorded, which the
                renderer bridges rather than plotting as zero
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from neuron_hub.core.model import (
    BurnPeriod,
    BurnSnapshot,
    BurndownChart,
    ChartPoint,
    PointsPair,
    Program,
    Subcomponent,
    Workstream,
)
from neuron_hub.core.periods.burn_periods import Clock, build_timeline, get_current_period
from neuron_hub.core.rollup.rollup import (
    effective_points,
    live_totals,
    round_half_up,
    subtask_weighted_completed_points,
)


LIVE_LABEL_SUFFIX = " *"


def build_chart_data(
    periods: list[BurnPeriod],
    snapshot_by_date: Mapping[str, PointsPair],
    start_total: int,
    live_remaining: int,
    live_total_points: int,
    current_period: BurnPeriod,
) -> list[ChartPoint]:
    last_idx = len(periods) - 1 or 1

    scope_series: list[int] = []
    last_known_scope = start_total
    for period in periods:
        snap = snapshot_by_date.get(period.date_key)
        if snap is not None:
            last_known_scope = snap.total_points
        elif period.date_key == current_period.date_key:
            last_known_scope = live_total_points
        scope_series.append(last_known_scope)

    peak_scope = max(scope_series) if scope_series else start_total

    points: list[ChartPoint] = []
    for idx, period in enumerate(periods):
        snap = snapshot_by_date.get(period.date_key)
        is_current = period.date_key == current_period.date_key
        progress = 1 - idx / last_idx

        remaining: Optional[int] = None
        label = period.short_label
        if idx == 0:
            remaining = peak_scope
        elif snap is not None:
            remaining = snap.total_points - snap.completed_points
        elif is_current:
            remaining = live_remaining
            label = period.short_label + LIVE_LABEL_SUFFIX

        points.append(
            ChartPoint(
                label=label,
                date=period.date_key,
                remaining=remaining,
                ideal=max(0, round_half_up(start_total * progress)),
                scope_line=max(0, round_half_up(peak_scope * progress)),
                is_current=is_current,
                scope_changed=idx > 0 and scope_series[idx] != scope_series[idx - 1],
            )
        )
    return points


# ── Snapshot history adapters ───────────────────────


def _add(by_date: dict[str, PointsPair], key: str, total: int, completed: int) -> None:
    prev = by_date.get(key)
    if prev is not None:
        total += prev.total_points
        completed += prev.completed_points
    by_date[key] = PointsPair(total_points=total, completed_points=completed)


def build_overall_snapshot_by_date(
    snapshots: Iterable[BurnSnapshot], program_id: Optional[str] = None
) -> dict[str, PointsPair]:
    """Program-wide totals per date.

    Breakdowns win over the stored headline numbers when present: subcomponent
    entries, else the workstream entry itself.
    """
    by_date: dict[str, PointsPair] = {}
    for snap in snapshots:
        if program_id is not None and snap.program_id != program_id:
            continue

        if snap.workstream_data is None:
            _add(by_date, snap.date, snap.total_points, snap.completed_points)
            continue

        total = completed = 0
        for entry in snap.workstream_data.values():
            if entry.subcomponents is not None:
                for sub in entry.subcomponents.values():
                    total += sub.total_points
                    completed += sub.completed_points
            else:
                total += entry.total_points
                completed += entry.completed_points
        _add(by_date, snap.date, total, completed)
    return by_date


def workstream_snapshot_by_date(
    snapshots: Iterable[BurnSnapshot], workstream_id: str
) -> dict[str, PointsPair]:
    by_date: dict[str, PointsPair] = {}
    for snap in snapshots:
        if snap.workstream_data is None:
            continue
        entry = snap.workstream_data.get(workstream_id)
        if entry is None:
            continue
        by_date[snap.date] = PointsPair(entry.total_points, entry.completed_points)
    return by_date


def subcomponent_snapshot_by_date(
    snapshots: Iterable[BurnSnapshot], workstream_id: str, subcomponent_id: str
) -> dict[str, PointsPair]:
    by_date: dict[str, PointsPair] = {}
    for snap in snapshots:
        if snap.workstream_data is None:
            continue
        entry = snap.workstream_data.get(workstream_id)
        if entry is None or entry.subcomponents is None:
            continue
        sub = entry.subcomponents.get(subcomponent_id)
        if sub is None:
            continue
        by_date[snap.date] = PointsPair(sub.total_points, sub.completed_points)
    return by_date


# ── Ready-made charts ───────────────────────────────


def _subcomponent_live(sub: Subcomponent) -> tuple[int, int]:
    total = sum(effective_points(t) for t in sub.subtasks)
    completed = sum(subtask_weighted_completed_points(t) for t in sub.subtasks)
    return total, completed


def _workstream_live(ws: Workstream) -> tuple[int, int]:
    total = completed = 0
    for sub in ws.subcomponents:
        t, c = _subcomponent_live(sub)
        total += t
        completed += c
    return total, completed


def program_burndown(
    program: Program,
    snapshots: Iterable[BurnSnapshot],
    clock: Optional[Clock] = None,
    organization: Optional[str] = None,
) -> BurndownChart:
    """Overall program chart; starts at base (non-added) points.

    Snapshots carry no per-organization breakdown, so an organization-scoped
    chart is drawn from live data only.
    """
    periods = build_timeline(program)
    totals = live_totals(program.workstreams, organization=organization)
    if organization is None:
        by_date = build_overall_snapshot_by_date(snapshots, program.id)
    else:
        by_date = {}

    data = build_chart_data(
        periods,
        by_date,
        totals.base_points,
        totals.remaining_points,
        totals.scope_points,
        get_current_period(clock),
    )
    return BurndownChart(
        id=program.id,
        name=program.name if organization is None else f"{program.name} ({organization})",
        total_points=totals.scope_points,
        completed_points=totals.completed_points,
        points=data,
    )


def workstream_burndown(
    program: Program,
    workstream: Workstream,
    snapshots: Iterable[BurnSnapshot],
    clock: Optional[Clock] = None,
) -> BurndownChart:
    total, completed = _workstream_live(workstream)
    data = build_chart_data(
        build_timeline(program),
        workstream_snapshot_by_date(snapshots, workstream.id),
        total,
        total - completed,
        total,
        get_current_period(clock),
    )
    return BurndownChart(
        id=workstream.id,
        name=workstream.name,
        total_points=total,
        completed_points=completed,
        points=data,
    )


def subcomponent_burndown(
    program: Program,
    workstream: Workstream,
    subcomponent: Subcomponent,
    snapshots: Iterable[BurnSnapshot],
    clock: Optional[Clock] = None,
    is_mine: bool = True,
) -> BurndownChart:
    total, completed = _subcomponent_live(subcomponent)
    data = build_chart_data(
        build_timeline(program),
        subcomponent_snapshot_by_date(snapshots, workstream.id, subcomponent.id),
        total,
        total - completed,
        total,
        get_current_period(clock),
    )
    return BurndownChart(
        id=subcomponent.id,
        name=subcomponent.name,
        total_points=total,
        completed_points=completed,
        points=data,
        is_mine=is_mine,
    )


def owner_burndowns(
    program: Program,
    owner_id: str,
    snapshots: Iterable[BurnSnapshot],
    clock: Optional[Clock] = None,
) -> tuple[list[BurndownChart], list[BurndownChart]]:
    """Charts for an owner's dashboard: (workstream charts, subcomponent charts).

    Covers every workstream holding at least one subcomponent owned by
    owner_id. Subcomponent charts include the owner's teammates' work in those
    workstreams, flagged with is_mine; empty subcomponents are skipped.
    """
    snapshots = list(snapshots)
    ws_charts: list[BurndownChart] = []
    sub_charts: list[BurndownChart] = []
    for ws in program.workstreams:
        if not any(s.owner_id == owner_id for s in ws.subcomponents):
            continue
        ws_charts.append(workstream_burndown(program, ws, snapshots, clock))
        for sub in ws.subcomponents:
            total, _ = _subcomponent_live(sub)
            if total == 0:
                continue
            sub_charts.append(
                subcomponent_burndown(
                    program, ws, sub, snapshots, clock, is_mine=sub.owner_id == owner_id
                )
            )
    return ws_charts, sub_charts
