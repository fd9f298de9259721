from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, cast

from neuron_hub.core.errors import HubValidationError
from neuron_hub.core.estimate.story_points import INTEGRATION_LEVELS, UNKNOWNS_LEVELS
from neuron_hub.core.model import (
    CompletionNote,
    Program,
    Subcomponent,
    SubcomponentStatus,
    Subtask,
    SubtaskStatus,
    Workstream,
)
from neuron_hub.core.periods.burn_periods import parse_date_key
from neuron_hub.core.rollup.rollup import (
    initiative_percent,
    initiative_total_points,
    sizing_for,
    subtask_status_for_percent,
)


SUBTASK_STATUSES: set[str] = {"NOT_STARTED", "IN_PROGRESS", "DONE"}
SUBCOMPONENT_STATUSES: set[str] = {"NOT_STARTED", "IN_PROGRESS", "BLOCKED", "DONE"}


class _Collector:
    def __init__(self, file: Optional[str]) -> None:
        self.file = file
        self.errors: list[HubValidationError] = []

    def add(self, code: str, message: str, path: str) -> None:
        self.errors.append(HubValidationError(code=code, message=message, file=self.file, path=path))


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _required_str(raw: dict[str, Any], key: str, path: str, errs: _Collector) -> Optional[str]:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        errs.add("E_REQUIRED_FIELD", f"{key} is required and must be a non-empty string", f"{path}.{key}")
        return None
    return value


def _optional_str(raw: dict[str, Any], key: str, path: str, errs: _Collector) -> Optional[str]:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        errs.add("E_INVALID_TYPE", f"{key} must be a string", f"{path}.{key}")
        return None
    return value


def _optional_date(raw: dict[str, Any], key: str, path: str, errs: _Collector) -> Optional[date]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    errs.add("E_INVALID_DATE", f"{key} must be an ISO date (YYYY-MM-DD)", f"{path}.{key}")
    return None


def _list_of_objects(raw: dict[str, Any], key: str, path: str, errs: _Collector) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        errs.add("E_INVALID_TYPE", f"{key} must be an array", f"{path}.{key}")
        return []
    return value


def validate_program(doc: dict[str, Any]) -> tuple[Optional[Program], list[HubValidationError]]:
    """Validate a program document and build the frozen model.

    Returns (program, errors). Program is None when errors exist.
    """

    errs = _Collector(cast(Optional[str], doc.get("__file__")))

    schema_version = doc.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errs.add(
            "E_REQUIRED_FIELD",
            "schema_version is required and must be a non-empty string",
            "schema_version",
        )

    raw = doc.get("program")
    if not isinstance(raw, dict):
        errs.add("E_REQUIRED_FIELD", "program is required and must be an object", "program")
        return None, _sorted(errs.errors)

    path = "program"
    pid = _required_str(raw, "id", path, errs)
    name = _required_str(raw, "name", path, errs)

    fy: dict[str, int] = {}
    for key in ("fy_start_year", "fy_end_year"):
        value = raw.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 99:
            errs.add("E_INVALID_TYPE", f"{key} must be a two-digit year (0-99)", f"{path}.{key}")
        else:
            fy[key] = value
    if len(fy) == 2 and fy["fy_end_year"] < fy["fy_start_year"]:
        errs.add("E_INVALID_RANGE", "fy_end_year must not be before fy_start_year", f"{path}.fy_end_year")

    start_date = _optional_date(raw, "start_date", path, errs)
    target_date = _optional_date(raw, "target_date", path, errs)
    if start_date and target_date and target_date < start_date:
        errs.add("E_INVALID_RANGE", "target_date must not be before start_date", f"{path}.target_date")

    workstreams: list[Workstream] = []
    seen_ids: set[str] = set()
    for i, raw_ws in enumerate(_list_of_objects(raw, "workstreams", path, errs)):
        ws = _workstream(raw_ws, f"{path}.workstreams[{i}]", errs, seen_ids)
        if ws is not None:
            workstreams.append(ws)

    if errs.errors:
        return None, _sorted(errs.errors)

    program = Program(
        id=cast(str, pid),
        name=cast(str, name),
        fy_start_year=fy["fy_start_year"],
        fy_end_year=fy["fy_end_year"],
        workstreams=tuple(workstreams),
        start_date=start_date,
        target_date=target_date,
    )
    return program, []


def _check_id(raw: dict[str, Any], path: str, errs: _Collector, seen_ids: set[str]) -> Optional[str]:
    rid = _required_str(raw, "id", path, errs)
    if rid is None:
        return None
    if rid in seen_ids:
        errs.add("E_DUPLICATE_ID", f"duplicate id: {rid}", f"{path}.id")
        return None
    seen_ids.add(rid)
    return rid


def _workstream(raw: Any, path: str, errs: _Collector, seen_ids: set[str]) -> Optional[Workstream]:
    if not isinstance(raw, dict):
        errs.add("E_INVALID_TYPE", "workstream must be an object", path)
        return None
    wid = _check_id(raw, path, errs, seen_ids)
    name = _required_str(raw, "name", path, errs)
    target = _optional_str(raw, "target_completion_date", path, errs)

    subs: list[Subcomponent] = []
    for i, raw_sub in enumerate(_list_of_objects(raw, "subcomponents", path, errs)):
        sub = _subcomponent(raw_sub, f"{path}.subcomponents[{i}]", errs, seen_ids)
        if sub is not None:
            subs.append(sub)

    if wid is None or name is None:
        return None
    return Workstream(id=wid, name=name, subcomponents=tuple(subs), target_completion_date=target)


def _subcomponent(raw: Any, path: str, errs: _Collector, seen_ids: set[str]) -> Optional[Subcomponent]:
    if not isinstance(raw, dict):
        errs.add("E_INVALID_TYPE", "subcomponent must be an object", path)
        return None
    sid = _check_id(raw, path, errs, seen_ids)
    name = _required_str(raw, "name", path, errs)

    status = raw.get("status", "NOT_STARTED")
    if status not in SUBCOMPONENT_STATUSES:
        errs.add("E_INVALID_ENUM", f"status must be one of {sorted(SUBCOMPONENT_STATUSES)}", f"{path}.status")

    total_points = raw.get("total_points", 0)
    if not isinstance(total_points, int) or isinstance(total_points, bool) or total_points < 0:
        errs.add("E_INVALID_TYPE", "total_points must be a non-negative integer", f"{path}.total_points")

    for key in ("planned_start_month", "planned_end_month"):
        value = raw.get(key)
        if value is not None and (not isinstance(value, str) or parse_date_key(value) is None):
            errs.add("E_INVALID_DATE_KEY", f"{key} must be a YYYY-MM string", f"{path}.{key}")

    owner_id = _optional_str(raw, "owner_id", path, errs)
    owner_initials = _optional_str(raw, "owner_initials", path, errs)

    subtasks: list[Subtask] = []
    for i, raw_st in enumerate(_list_of_objects(raw, "subtasks", path, errs)):
        st = _subtask(raw_st, f"{path}.subtasks[{i}]", errs, seen_ids)
        if st is not None:
            subtasks.append(st)

    if sid is None or name is None:
        return None
    return Subcomponent(
        id=sid,
        name=name,
        subtasks=tuple(subtasks),
        status=cast(SubcomponentStatus, status),
        total_points=total_points if isinstance(total_points, int) else 0,
        owner_id=owner_id,
        owner_initials=owner_initials,
        planned_start_month=raw.get("planned_start_month"),
        planned_end_month=raw.get("planned_end_month"),
    )


def _subtask(raw: Any, path: str, errs: _Collector, seen_ids: set[str]) -> Optional[Subtask]:
    if not isinstance(raw, dict):
        errs.add("E_INVALID_TYPE", "subtask must be an object", path)
        return None
    tid = _check_id(raw, path, errs, seen_ids)
    name = _required_str(raw, "name", path, errs)

    points = raw.get("points", 0)
    if not isinstance(points, int) or isinstance(points, bool) or points < 0:
        errs.add("E_INVALID_TYPE", "points must be a non-negative integer", f"{path}.points")
        points = 0

    status = raw.get("status")
    if status is not None and status not in SUBTASK_STATUSES:
        errs.add("E_INVALID_ENUM", f"status must be one of {sorted(SUBTASK_STATUSES)}", f"{path}.status")
        status = None

    percent = raw.get("completion_percent")
    if percent is None:
        percent = 100 if status == "DONE" else 0
    elif not isinstance(percent, int) or isinstance(percent, bool) or not 0 <= percent <= 100:
        errs.add("E_INVALID_TYPE", "completion_percent must be an integer 0-100", f"{path}.completion_percent")
        percent = 0
    if status is None:
        status = subtask_status_for_percent(percent)

    days = raw.get("estimated_days")
    if days is not None and (not _is_number(days) or days < 0):
        errs.add("E_INVALID_TYPE", "estimated_days must be a non-negative number", f"{path}.estimated_days")
        days = None

    unknowns = raw.get("unknowns")
    if unknowns is not None and unknowns not in UNKNOWNS_LEVELS:
        errs.add("E_INVALID_ENUM", f"unknowns must be one of {list(UNKNOWNS_LEVELS)}", f"{path}.unknowns")
        unknowns = None

    integration = raw.get("integration")
    if integration is not None and integration not in INTEGRATION_LEVELS:
        errs.add(
            "E_INVALID_ENUM", f"integration must be one of {list(INTEGRATION_LEVELS)}", f"{path}.integration"
        )
        integration = None

    added = raw.get("is_added_scope", False)
    if not isinstance(added, bool):
        errs.add("E_INVALID_TYPE", "is_added_scope must be a boolean", f"{path}.is_added_scope")
        added = False

    organization = _optional_str(raw, "assigned_organization", path, errs)
    assignee_id = _optional_str(raw, "assignee_id", path, errs)

    notes: list[CompletionNote] = []
    for i, raw_note in enumerate(_list_of_objects(raw, "completion_notes", path, errs)):
        note = _completion_note(raw_note, f"{path}.completion_notes[{i}]", errs)
        if note is not None:
            notes.append(note)

    if tid is None or name is None:
        return None
    return Subtask(
        id=tid,
        name=name,
        sizing=sizing_for(points, days, unknowns, integration),
        completion_percent=percent,
        status=cast(SubtaskStatus, status),
        is_added_scope=added,
        assigned_organization=organization,
        assignee_id=assignee_id,
        completion_notes=tuple(notes),
    )


def _completion_note(raw: Any, path: str, errs: _Collector) -> Optional[CompletionNote]:
    if not isinstance(raw, dict):
        errs.add("E_INVALID_TYPE", "completion note must be an object", path)
        return None

    ok = True
    for key in ("previous_percent", "new_percent"):
        value = raw.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 100:
            errs.add("E_INVALID_TYPE", f"{key} must be an integer 0-100", f"{path}.{key}")
            ok = False

    created_at = raw.get("created_at")
    if isinstance(created_at, str):
        try:
            created_at = datetime.fromisoformat(created_at)
        except ValueError:
            created_at = None
    if not isinstance(created_at, datetime):
        errs.add("E_INVALID_DATE", "created_at must be an ISO timestamp", f"{path}.created_at")
        ok = False
    elif created_at.tzinfo is None:
        # naive timestamps are read as UTC, matching update_completion
        created_at = created_at.replace(tzinfo=timezone.utc)

    reason = raw.get("reason") or ""
    if not isinstance(reason, str):
        errs.add("E_INVALID_TYPE", "reason must be a string", f"{path}.reason")
        ok = False
    actor_id = _optional_str(raw, "actor_id", path, errs)

    if not ok:
        return None
    return CompletionNote(
        previous_percent=raw["previous_percent"],
        new_percent=raw["new_percent"],
        reason=reason,
        created_at=cast(datetime, created_at),
        actor_id=actor_id,
    )


def summarize_program(program: Program) -> str:
    subcomponents = [s for ws in program.workstreams for s in ws.subcomponents]
    subtasks = [t for s in subcomponents for t in s.subtasks]
    return (
        f"OK: {program.name} ({program.id})\n"
        f"workstreams={len(program.workstreams)}, subcomponents={len(subcomponents)}, "
        f"subtasks={len(subtasks)}\n"
        f"Points: {initiative_total_points(program.workstreams)} "
        f"({initiative_percent(program.workstreams)}% done)"
    )


def _sorted(errors: Iterable[HubValidationError]) -> list[HubValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
