from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from neuron_hub.core.model import CompletionNote, EstimatedPoints, ManualPoints, Subtask
from neuron_hub.core.rollup.rollup import effective_points, sizing_for, subtask_status_for_percent


def clamp_percent(value: float) -> int:
    return int(max(0, min(100, value)))


def update_completion(
    subtask: Subtask,
    percent: float,
    reason: str = "",
    actor_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> Subtask:
    """Set completion (clamped to 0-100), re-derive status and log the change.

    A CompletionNote is appended only when the percentage actually moves.
    """
    new_percent = clamp_percent(percent)
    notes = subtask.completion_notes
    if new_percent != subtask.completion_percent:
        note = CompletionNote(
            previous_percent=subtask.completion_percent,
            new_percent=new_percent,
            reason=reason,
            created_at=at or datetime.now(timezone.utc),
            actor_id=actor_id,
        )
        notes = notes + (note,)
    return replace(
        subtask,
        completion_percent=new_percent,
        status=subtask_status_for_percent(new_percent),
        completion_notes=notes,
    )


def update_estimation(
    subtask: Subtask,
    estimated_days: Optional[float],
    unknowns: Optional[str] = None,
    integration: Optional[str] = None,
    points: Optional[int] = None,
) -> Subtask:
    """Re-size a subtask.

    Clearing the estimate falls back to manual points: the given points, or
    whatever the subtask was worth before.
    """
    if points is None:
        points = effective_points(subtask)
    if isinstance(subtask.sizing, EstimatedPoints):
        unknowns = unknowns or subtask.sizing.unknowns
        integration = integration or subtask.sizing.integration
    return replace(subtask, sizing=sizing_for(points, estimated_days, unknowns, integration))


def set_manual_points(subtask: Subtask, points: int) -> Subtask:
    return replace(subtask, sizing=ManualPoints(points=max(0, int(points))))


def set_added_scope(subtask: Subtask, is_added_scope: bool) -> Subtask:
    return replace(subtask, is_added_scope=is_added_scope)
