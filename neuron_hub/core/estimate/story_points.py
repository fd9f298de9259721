from __future__ import annotations

from typing import Literal, Union

from neuron_hub.core.model import StoryPointsResult


UNKNOWNS_LEVELS: tuple[str, ...] = (
    "None",
    "Low",
    "Low–Moderate",
    "High",
    "Very High / Exploratory",
)

INTEGRATION_LEVELS: tuple[str, ...] = (
    "Single system",
    "1–2 systems",
    "Multiple internal systems",
    "Cross-team / external dependency",
)

FIBONACCI_ANCHORS: tuple[int, ...] = (1, 3, 5, 8, 13, 21)

BREAK_DOWN_DAYS = 30
BREAK_DOWN_REQUIRED = "break_down_required"
VERY_HIGH_UNKNOWNS = "very_high_unknowns"

_UNKNOWNS_ADD: dict[str, int] = {
    "None": 0,
    "Low": 1,
    "Low–Moderate": 2,
    "High": 4,
    "Very High / Exploratory": 5,
}

_INTEGRATION_ADD: dict[str, int] = {
    "Single system": 0,
    "1–2 systems": 0,
    "Multiple internal systems": 1,
    "Cross-team / external dependency": 1,
}

# Upper bound (inclusive) in days -> base points. Anything above 13 days is 21.
_DAY_BUCKETS: tuple[tuple[float, int], ...] = (
    (1, 1),
    (3, 3),
    (5, 5),
    (8, 8),
    (13, 13),
)


def base_points_from_days(days: float) -> tuple[int, bool]:
    """Return (base points, break-down flag) for an estimated duration."""
    if days <= 0:
        return 0, False
    if days >= BREAK_DOWN_DAYS:
        return 21, True
    for upper, points in _DAY_BUCKETS:
        if days <= upper:
            return points, False
    # 14-29 days
    return 21, False


def unknowns_add(level: str) -> int:
    return _UNKNOWNS_ADD.get(level, 0)


def integration_add(level: str) -> int:
    return _INTEGRATION_ADD.get(level, 0)


def round_to_fibonacci(raw: float, *, bias_up: bool = False) -> int:
    """Round a raw point total onto the Fibonacci anchors.

    Exact anchors come back unchanged. Between two anchors the value rounds up
    once it reaches the midpoint; with bias_up it rounds up as soon as it
    exceeds the lower anchor. Values at or above 21 are capped at 21.
    """
    if raw <= 0:
        return 0
    if raw >= FIBONACCI_ANCHORS[-1]:
        return FIBONACCI_ANCHORS[-1]

    for i, anchor in enumerate(FIBONACCI_ANCHORS):
        if raw == anchor:
            return anchor
        if raw < anchor:
            if i == 0:
                return anchor
            lower = FIBONACCI_ANCHORS[i - 1]
            if bias_up:
                return anchor if raw > lower else lower
            mid = (lower + anchor) / 2
            return anchor if raw >= mid else lower

    return FIBONACCI_ANCHORS[-1]


def compute_story_points(
    days: float,
    unknowns: str = "None",
    integration: str = "Single system",
) -> StoryPointsResult:
    """Convert (duration, unknowns, integration) into Fibonacci story points.

    Never raises: unrecognised levels contribute nothing and non-positive
    durations give a zero base.
    """
    flags: list[str] = []

    base, break_down = base_points_from_days(days)
    u_add = unknowns_add(unknowns)
    i_add = integration_add(integration)
    raw = base + u_add + i_add

    bias_up = unknowns == "Very High / Exploratory"

    final: Union[int, Literal["21+"]]
    if break_down:
        flags.append(BREAK_DOWN_REQUIRED)
        final = "21+"
    else:
        final = round_to_fibonacci(raw, bias_up=bias_up)

    if bias_up:
        flags.append(VERY_HIGH_UNKNOWNS)

    return StoryPointsResult(
        base=base,
        unknowns_adj=u_add,
        integration_adj=i_add,
        raw=raw,
        final=final,
        flags=tuple(flags),
    )


def final_as_number(value: Union[int, str]) -> int:
    """Treat "21+" as 21 for numeric summation."""
    if value == "21+":
        return 21
    return int(value)
