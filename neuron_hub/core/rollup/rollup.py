"""Rollup calculations over the Subtask -> Subcomponent -> Workstream -> Program tree.

Rules:
  - Story points exist only on subtasks; a subtask's effective points come from
    the estimator when it is sized by estimation, else from its manual value.
  - Subcomponent points = sum(subtask points); workstream = sum(subcomponents);
    program = sum(workstreams).
  - Completed points come in two flavours that are kept apart on purpose:
      * status-gated: full points of DONE subtasks only (audits, rollup pages)
      * weighted:     points * completion_percent / 100 (burndown, percent views)
  - percent = round(completed / total * 100), 0 when total is 0.

Nothing here raises; empty collections give zeros.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from neuron_hub.core.estimate.story_points import compute_story_points, final_as_number
from neuron_hub.core.model import (
    EstimatedPoints,
    LiveTotals,
    ManualPoints,
    PointsSource,
    Subcomponent,
    Subtask,
    SubtaskStatus,
    Workstream,
)


IN_PROGRESS_CREDIT = 0.5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent_of(completed: float, total: float) -> int:
    if total == 0:
        return 0
    return round_half_up(completed / total * 100)


def sizing_for(
    points: int,
    estimated_days: Optional[float] = None,
    unknowns: Optional[str] = None,
    integration: Optional[str] = None,
) -> PointsSource:
    """Pick the sizing variant for raw subtask fields."""
    if estimated_days is not None and estimated_days > 0:
        return EstimatedPoints(
            days=estimated_days,
            unknowns=unknowns or "None",
            integration=integration or "Single system",
        )
    return ManualPoints(points=max(0, int(points)))


def effective_points(subtask: Subtask) -> int:
    sizing = subtask.sizing
    if isinstance(sizing, EstimatedPoints):
        sp = compute_story_points(sizing.days, sizing.unknowns, sizing.integration)
        return final_as_number(sp.final)
    return sizing.points


def subtask_status_for_percent(percent: int) -> SubtaskStatus:
    if percent >= 100:
        return "DONE"
    if percent > 0:
        return "IN_PROGRESS"
    return "NOT_STARTED"


def subtask_weighted_completed_points(subtask: Subtask) -> int:
    return round_half_up(effective_points(subtask) * subtask.completion_percent / 100)


# ── Status-gated rollup ─────────────────────────────


def subcomponent_total_points(sub: Subcomponent) -> int:
    """Sum of subtask points; the subcomponent's own total_points is ignored."""
    return sum(effective_points(t) for t in sub.subtasks)


def subcomponent_completed_points(sub: Subcomponent) -> int:
    """Sum of points of DONE subtasks."""
    return sum(effective_points(t) for t in sub.subtasks if t.status == "DONE")


def subcomponent_percent(sub: Subcomponent) -> int:
    return percent_of(subcomponent_completed_points(sub), subcomponent_total_points(sub))


def workstream_total_points(ws: Workstream) -> int:
    return sum(subcomponent_total_points(s) for s in ws.subcomponents)


def workstream_completed_points(ws: Workstream) -> int:
    return sum(subcomponent_completed_points(s) for s in ws.subcomponents)


def workstream_percent(ws: Workstream) -> int:
    return percent_of(workstream_completed_points(ws), workstream_total_points(ws))


def initiative_total_points(workstreams: Iterable[Workstream]) -> int:
    """Program-level total (the UI calls a program an "initiative")."""
    return sum(workstream_total_points(ws) for ws in workstreams)


def initiative_completed_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_completed_points(ws) for ws in workstreams)


def initiative_percent(workstreams: Iterable[Workstream]) -> int:
    workstreams = list(workstreams)
    return percent_of(initiative_completed_points(workstreams), initiative_total_points(workstreams))


def _owned(workstreams: Iterable[Workstream], owner_id: str) -> list[Subcomponent]:
    return [s for ws in workstreams for s in ws.subcomponents if s.owner_id == owner_id]


def owner_total_points(workstreams: Iterable[Workstream], owner_id: str) -> int:
    """Points under subcomponents owned by owner_id."""
    return sum(subcomponent_total_points(s) for s in _owned(workstreams, owner_id))


def owner_completed_points(workstreams: Iterable[Workstream], owner_id: str) -> int:
    return sum(subcomponent_completed_points(s) for s in _owned(workstreams, owner_id))


# ── Weighted rollup ─────────────────────────────────


def _status_credit(status: str, points: int) -> int:
    if status == "DONE":
        return points
    if status == "IN_PROGRESS":
        return round_half_up(points * IN_PROGRESS_CREDIT)
    return 0


def subcomponent_weighted_total_points(sub: Subcomponent) -> int:
    """Like subcomponent_total_points, but an empty subcomponent reports its manual total."""
    if not sub.subtasks:
        return sub.total_points
    return subcomponent_total_points(sub)


def subcomponent_weighted_completed_points(sub: Subcomponent) -> int:
    if not sub.subtasks:
        return _status_credit(sub.status, sub.total_points)
    return round_half_up(
        sum(effective_points(t) * t.completion_percent / 100 for t in sub.subtasks)
    )


def subcomponent_weighted_percent(sub: Subcomponent) -> int:
    return percent_of(
        subcomponent_weighted_completed_points(sub), subcomponent_weighted_total_points(sub)
    )


def workstream_weighted_total_points(ws: Workstream) -> int:
    return sum(subcomponent_weighted_total_points(s) for s in ws.subcomponents)


def workstream_weighted_completed_points(ws: Workstream) -> int:
    return sum(subcomponent_weighted_completed_points(s) for s in ws.subcomponents)


def workstream_weighted_percent(ws: Workstream) -> int:
    return percent_of(workstream_weighted_completed_points(ws), workstream_weighted_total_points(ws))


def program_weighted_total_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_weighted_total_points(ws) for ws in workstreams)


def program_weighted_completed_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_weighted_completed_points(ws) for ws in workstreams)


def program_weighted_percent(workstreams: Iterable[Workstream]) -> int:
    workstreams = list(workstreams)
    return percent_of(
        program_weighted_completed_points(workstreams), program_weighted_total_points(workstreams)
    )


# ── Base vs added scope ─────────────────────────────


def subcomponent_base_points(sub: Subcomponent) -> int:
    """Original-scope points; an empty subcomponent counts its manual total as original."""
    if not sub.subtasks:
        return sub.total_points
    return sum(effective_points(t) for t in sub.subtasks if not t.is_added_scope)


def subcomponent_added_points(sub: Subcomponent) -> int:
    return sum(effective_points(t) for t in sub.subtasks if t.is_added_scope)


def subcomponent_completed_base_points(sub: Subcomponent) -> int:
    if not sub.subtasks:
        return _status_credit(sub.status, sub.total_points)
    return round_half_up(
        sum(
            effective_points(t) * t.completion_percent / 100
            for t in sub.subtasks
            if not t.is_added_scope
        )
    )


def subcomponent_completed_added_points(sub: Subcomponent) -> int:
    return round_half_up(
        sum(
            effective_points(t) * t.completion_percent / 100
            for t in sub.subtasks
            if t.is_added_scope
        )
    )


def workstream_base_points(ws: Workstream) -> int:
    return sum(subcomponent_base_points(s) for s in ws.subcomponents)


def workstream_added_points(ws: Workstream) -> int:
    return sum(subcomponent_added_points(s) for s in ws.subcomponents)


def workstream_completed_base_points(ws: Workstream) -> int:
    return sum(subcomponent_completed_base_points(s) for s in ws.subcomponents)


def workstream_completed_added_points(ws: Workstream) -> int:
    return sum(subcomponent_completed_added_points(s) for s in ws.subcomponents)


def program_base_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_base_points(ws) for ws in workstreams)


def program_added_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_added_points(ws) for ws in workstreams)


def program_completed_base_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_completed_base_points(ws) for ws in workstreams)


def program_completed_added_points(workstreams: Iterable[Workstream]) -> int:
    return sum(workstream_completed_added_points(ws) for ws in workstreams)


def base_points(workstreams: Iterable[Workstream]) -> int:
    """Sum of subtask points not flagged as added scope."""
    return sum(
        effective_points(t)
        for ws in workstreams
        for s in ws.subcomponents
        for t in s.subtasks
        if not t.is_added_scope
    )


def scope_points(workstreams: Iterable[Workstream]) -> int:
    """Sum of all subtask points, added scope included."""
    return sum(
        effective_points(t) for ws in workstreams for s in ws.subcomponents for t in s.subtasks
    )


def live_totals(
    workstreams: Iterable[Workstream], organization: Optional[str] = None
) -> LiveTotals:
    """Current base/scope/completed points, optionally for one assigned organization."""
    base = scope = completed = 0
    for ws in workstreams:
        for sub in ws.subcomponents:
            for t in sub.subtasks:
                if organization is not None and t.assigned_organization != organization:
                    continue
                pts = effective_points(t)
                scope += pts
                if not t.is_added_scope:
                    base += pts
                completed += subtask_weighted_completed_points(t)
    return LiveTotals(base_points=base, scope_points=scope, completed_points=completed)
