from __future__ import annotations

import json
import logging
import math
import threading
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from neuron_hub.core.errors import HubLoadError, SnapshotError
from neuron_hub.core.model import (
    BurnPeriod,
    BurnSnapshot,
    Program,
    SubcomponentSnapshot,
    WorkstreamSnapshot,
)
from neuron_hub.core.periods.burn_periods import Clock, get_current_period, parse_date_key
from neuron_hub.core.rollup.rollup import effective_points, subtask_weighted_completed_points

logger = logging.getLogger(__name__)


def percent_complete(total: int, completed: int) -> float:
    return completed / total * 100 if total > 0 else 0.0


def capture_snapshot(program: Program, period: BurnPeriod) -> BurnSnapshot:
    """Compute live totals for a program, broken down per workstream and subcomponent.

    Completed points are weighted by each subtask's completion percentage.
    """
    total = completed = 0
    ws_data: dict[str, WorkstreamSnapshot] = {}

    for ws in program.workstreams:
        ws_total = ws_completed = 0
        subs: dict[str, SubcomponentSnapshot] = {}
        for sub in ws.subcomponents:
            sub_total = sub_completed = 0
            for st in sub.subtasks:
                sub_total += effective_points(st)
                sub_completed += subtask_weighted_completed_points(st)
            subs[sub.id] = SubcomponentSnapshot(
                name=sub.name, total_points=sub_total, completed_points=sub_completed
            )
            ws_total += sub_total
            ws_completed += sub_completed

        ws_data[ws.id] = WorkstreamSnapshot(
            name=ws.name,
            total_points=ws_total,
            completed_points=ws_completed,
            subcomponents=subs,
        )
        total += ws_total
        completed += ws_completed

    return BurnSnapshot(
        program_id=program.id,
        date=period.date_key,
        total_points=total,
        completed_points=completed,
        percent_complete=percent_complete(total, completed),
        workstream_data=ws_data,
    )


class SnapshotStore:
    """Snapshots keyed by (program_id, date). Writes overwrite, never duplicate."""

    def __init__(self, snapshots: Iterable[BurnSnapshot] = ()) -> None:
        self._lock = threading.Lock()
        self._by_key: dict[tuple[str, str], BurnSnapshot] = {}
        for snap in snapshots:
            self._by_key[(snap.program_id, snap.date)] = snap

    def __len__(self) -> int:
        return len(self._by_key)

    def upsert(self, snapshot: BurnSnapshot) -> BurnSnapshot:
        key = (snapshot.program_id, snapshot.date)
        with self._lock:
            replaced = key in self._by_key
            self._by_key[key] = snapshot
        logger.debug(
            "%s snapshot %s/%s (total=%d, completed=%d)",
            "updated" if replaced else "created",
            snapshot.program_id,
            snapshot.date,
            snapshot.total_points,
            snapshot.completed_points,
        )
        return snapshot

    def save(self, snapshot: BurnSnapshot, clock: Optional[Clock] = None) -> BurnSnapshot:
        """Upsert a snapshot, but only for the current month."""
        current = get_current_period(clock)
        if snapshot.date != current.date_key:
            raise SnapshotError(
                code="E_SNAPSHOT_NOT_CURRENT",
                message=f"snapshots can only be saved for the current month ({current.date_key}), got {snapshot.date}",
                path="date",
            )
        return self.upsert(snapshot)

    def for_program(
        self,
        program_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[BurnSnapshot]:
        with self._lock:
            snaps = [s for (pid, _), s in self._by_key.items() if pid == program_id]
        if date_from is not None:
            snaps = [s for s in snaps if s.date >= date_from]
        if date_to is not None:
            snaps = [s for s in snaps if s.date <= date_to]
        return sorted(snaps, key=lambda s: s.date)

    def latest(self, program_id: str) -> Optional[BurnSnapshot]:
        snaps = self.for_program(program_id)
        return snaps[-1] if snaps else None

    def all(self) -> list[BurnSnapshot]:
        with self._lock:
            snaps = list(self._by_key.values())
        return sorted(snaps, key=lambda s: (s.program_id, s.date))

    def dump(self, path: str) -> None:
        p = Path(path)
        if str(p.parent) not in (".", ""):
            p.parent.mkdir(parents=True, exist_ok=True)
        doc = {"snapshots": [snapshot_to_dict(s) for s in self.all()]}
        if p.suffix.lower() == ".json":
            p.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        else:
            p.write_text(
                yaml.safe_dump(doc, sort_keys=False, allow_unicode=True), encoding="utf-8"
            )
        logger.info("wrote %d snapshots to %s", len(doc["snapshots"]), p)


def save_monthly_snapshot(
    store: SnapshotStore, program: Program, clock: Optional[Clock] = None
) -> BurnSnapshot:
    period = get_current_period(clock)
    return store.save(capture_snapshot(program, period), clock=clock)


# ── Serialization ───────────────────────────────────


def snapshot_to_dict(snap: BurnSnapshot) -> dict[str, Any]:
    out: dict[str, Any] = {
        "program_id": snap.program_id,
        "date": snap.date,
        "total_points": snap.total_points,
        "completed_points": snap.completed_points,
        "percent_complete": round(snap.percent_complete, 2),
    }
    if snap.workstream_data is not None:
        ws_out: dict[str, Any] = {}
        for ws_id, ws in snap.workstream_data.items():
            entry: dict[str, Any] = {
                "name": ws.name,
                "total_points": ws.total_points,
                "completed_points": ws.completed_points,
            }
            if ws.subcomponents is not None:
                entry["subcomponents"] = {
                    sub_id: {
                        "name": sub.name,
                        "total_points": sub.total_points,
                        "completed_points": sub.completed_points,
                    }
                    for sub_id, sub in ws.subcomponents.items()
                }
            ws_out[ws_id] = entry
        out["workstream_data"] = ws_out
    return out


def load_snapshot_file(path: str) -> SnapshotStore:
    """Load a snapshot document; a missing file is an empty store."""
    p = Path(path)
    if not p.exists():
        logger.debug("snapshot file %s does not exist; starting empty", p)
        return SnapshotStore()

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:
        raise HubLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise HubLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except HubLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise HubLoadError(code=code, message=str(e), file=str(p)) from e

    if data is None:
        return SnapshotStore()
    if not isinstance(data, dict) or not isinstance(data.get("snapshots", []), list):
        raise HubLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="snapshot document must be a mapping with a 'snapshots' array",
            file=str(p),
        )

    snaps = [
        snapshot_from_dict(raw, file=str(p), path=f"snapshots[{i}]")
        for i, raw in enumerate(data.get("snapshots") or [])
    ]
    return SnapshotStore(snaps)


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _int_field(raw: dict[str, Any], key: str, *, file: Optional[str], path: str) -> int:
    value = raw.get(key, 0)
    if not _is_finite_number(value):
        raise HubLoadError(
            code="E_INVALID_TYPE",
            message=f"{key} must be a finite number",
            file=file,
            path=f"{path}.{key}",
        )
    return int(value)


def snapshot_from_dict(
    raw: Any, *, file: Optional[str] = None, path: str = "snapshot"
) -> BurnSnapshot:
    if not isinstance(raw, dict):
        raise HubLoadError(code="E_INVALID_TYPE", message="snapshot must be an object", file=file, path=path)

    program_id = raw.get("program_id")
    if not isinstance(program_id, str) or not program_id.strip():
        raise HubLoadError(
            code="E_REQUIRED_FIELD",
            message="program_id is required and must be a non-empty string",
            file=file,
            path=f"{path}.program_id",
        )

    date_key = raw.get("date")
    if not isinstance(date_key, str) or parse_date_key(date_key) is None:
        raise HubLoadError(
            code="E_INVALID_DATE_KEY",
            message="date must be a YYYY-MM string",
            file=file,
            path=f"{path}.date",
        )

    total = _int_field(raw, "total_points", file=file, path=path)
    completed = _int_field(raw, "completed_points", file=file, path=path)

    ws_data: Optional[dict[str, WorkstreamSnapshot]] = None
    raw_ws = raw.get("workstream_data")
    if isinstance(raw_ws, dict):
        ws_data = {}
        for ws_id, entry in raw_ws.items():
            ws_path = f"{path}.workstream_data.{ws_id}"
            if not isinstance(entry, dict):
                raise HubLoadError(
                    code="E_INVALID_TYPE", message="workstream entry must be an object", file=file, path=ws_path
                )
            subs: Optional[dict[str, SubcomponentSnapshot]] = None
            raw_subs = entry.get("subcomponents")
            if isinstance(raw_subs, dict):
                subs = {}
                for sub_id, sub in raw_subs.items():
                    sub_path = f"{ws_path}.subcomponents.{sub_id}"
                    if not isinstance(sub, dict):
                        raise HubLoadError(
                            code="E_INVALID_TYPE",
                            message="subcomponent entry must be an object",
                            file=file,
                            path=sub_path,
                        )
                    subs[str(sub_id)] = SubcomponentSnapshot(
                        name=str(sub.get("name") or ""),
                        total_points=_int_field(sub, "total_points", file=file, path=sub_path),
                        completed_points=_int_field(sub, "completed_points", file=file, path=sub_path),
                    )
            ws_data[str(ws_id)] = WorkstreamSnapshot(
                name=str(entry.get("name") or ""),
                total_points=_int_field(entry, "total_points", file=file, path=ws_path),
                completed_points=_int_field(entry, "completed_points", file=file, path=ws_path),
                subcomponents=subs,
            )
    elif raw_ws is not None:
        raise HubLoadError(
            code="E_INVALID_TYPE",
            message="workstream_data must be a mapping",
            file=file,
            path=f"{path}.workstream_data",
        )

    pct = raw.get("percent_complete")
    return BurnSnapshot(
        program_id=program_id,
        date=date_key,
        total_points=total,
        completed_points=completed,
        percent_complete=float(pct) if _is_finite_number(pct) else percent_complete(total, completed),
        workstream_data=ws_data,
    )
