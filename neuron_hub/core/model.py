from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional, Union


SubtaskStatus = Literal["NOT_STARTED", "IN_PROGRESS", "DONE"]
SubcomponentStatus = Literal["NOT_STARTED", "IN_PROGRESS", "BLOCKED", "DONE"]

UnknownsLevel = Literal[
    "None",
    "Low",
    "Low–Moderate",
    "High",
    "Very High / Exploratory",
]
IntegrationLevel = Literal[
    "Single system",
    "1–2 systems",
    "Multiple internal systems",
    "Cross-team / external dependency",
]


@dataclass(frozen=True)
class ManualPoints:
    points: int


@dataclass(frozen=True)
class EstimatedPoints:
    days: float
    unknowns: str = "None"
    integration: str = "Single system"


PointsSource = Union[ManualPoints, EstimatedPoints]


@dataclass(frozen=True)
class CompletionNote:
    previous_percent: int
    new_percent: int
    reason: str
    created_at: datetime
    actor_id: Optional[str] = None


@dataclass(frozen=True)
class Subtask:
    id: str
    name: str
    sizing: PointsSource
    completion_percent: int = 0
    status: SubtaskStatus = "NOT_STARTED"
    is_added_scope: bool = False
    assigned_organization: Optional[str] = None
    assignee_id: Optional[str] = None
    completion_notes: tuple[CompletionNote, ...] = ()


@dataclass(frozen=True)
class Subcomponent:
    id: str
    name: str
    subtasks: tuple[Subtask, ...] = ()
    status: SubcomponentStatus = "NOT_STARTED"
    total_points: int = 0  # only used when there are no subtasks
    owner_id: Optional[str] = None
    owner_initials: Optional[str] = None
    planned_start_month: Optional[str] = None
    planned_end_month: Optional[str] = None


@dataclass(frozen=True)
class Workstream:
    id: str
    name: str
    subcomponents: tuple[Subcomponent, ...] = ()
    target_completion_date: Optional[str] = None


@dataclass(frozen=True)
class Program:
    id: str
    name: str
    fy_start_year: int
    fy_end_year: int
    workstreams: tuple[Workstream, ...] = ()
    start_date: Optional[date] = None
    target_date: Optional[date] = None


@dataclass(frozen=True)
class StoryPointsResult:
    base: int
    unknowns_adj: int
    integration_adj: int
    raw: int
    final: Union[int, Literal["21+"]]
    flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PointsPair:
    total_points: int
    completed_points: int


@dataclass(frozen=True)
class SubcomponentSnapshot:
    name: str
    total_points: int
    completed_points: int


@dataclass(frozen=True)
class WorkstreamSnapshot:
    name: str
    total_points: int
    completed_points: int
    subcomponents: Optional[dict[str, SubcomponentSnapshot]] = None


@dataclass(frozen=True)
class BurnSnapshot:
    program_id: str
    date: str  # "YYYY-MM"
    total_points: int
    completed_points: int
    percent_complete: float = 0.0
    workstream_data: Optional[dict[str, WorkstreamSnapshot]] = None


@dataclass(frozen=True)
class BurnPeriod:
    date_key: str
    label: str
    short_label: str
    year: int
    month: int


@dataclass(frozen=True)
class ChartPoint:
    label: str
    date: str
    remaining: Optional[int]
    ideal: int
    scope_line: int
    is_current: bool
    scope_changed: bool


@dataclass(frozen=True)
class LiveTotals:
    base_points: int
    scope_points: int
    completed_points: int

    @property
    def remaining_points(self) -> int:
        return self.scope_points - self.completed_points


@dataclass(frozen=True)
class BurndownChart:
    """A titled chart series, as handed to the presentation layer."""

    id: str
    name: str
    total_points: int
    completed_points: int
    points: list[ChartPoint] = field(default_factory=list)
    is_mine: bool = True
