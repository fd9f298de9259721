from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict, replace
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from neuron_hub.core.burndown.chart_data import (
    program_burndown,
    subcomponent_burndown,
    workstream_burndown,
)
from neuron_hub.core.config.settings import HubSettings, SettingsError, load_and_merge
from neuron_hub.core.errors import HubError, HubLoadError, HubValidationError
from neuron_hub.core.estimate.story_points import (
    INTEGRATION_LEVELS,
    UNKNOWNS_LEVELS,
    compute_story_points,
)
from neuron_hub.core.io.load_program import load_program
from neuron_hub.core.model import BurndownChart, Program
from neuron_hub.core.periods.burn_periods import build_timeline, get_current_period
from neuron_hub.core.rollup.rollup import (
    initiative_completed_points,
    initiative_percent,
    initiative_total_points,
    live_totals,
    owner_completed_points,
    owner_total_points,
    percent_of,
    subcomponent_completed_points,
    subcomponent_percent,
    subcomponent_total_points,
    workstream_added_points,
    workstream_completed_points,
    workstream_percent,
    workstream_total_points,
    workstream_weighted_percent,
)
from neuron_hub.core.snapshots.store import (
    SnapshotStore,
    load_snapshot_file,
    save_monthly_snapshot,
    snapshot_to_dict,
)
from neuron_hub.core.validate.validate_program import summarize_program, validate_program

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


@app.callback()
def _callback(
    ctx: typer.Context,
    settings_file: Optional[str] = typer.Option(
        None, "--settings", help="Optional YAML settings file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr"),
) -> None:
    """Project Neuron program hub: story points, rollups and burndowns."""
    try:
        settings = load_and_merge(settings_file)
    except FileNotFoundError:
        _print_errors(
            [
                HubLoadError(
                    code="E_SETTINGS_FILE_NOT_FOUND",
                    message=f"settings file not found: {settings_file}",
                    path="settings",
                )
            ]
        )
        raise typer.Exit(code=1)
    except SettingsError as e:
        _print_errors(
            [HubValidationError(code="E_SETTINGS_INVALID", message=str(e), path="settings")]
        )
        raise typer.Exit(code=2)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(name)s %(message)s", stream=sys.stderr, force=True
        )
    else:
        logging.getLogger("neuron_hub").setLevel(settings.log_level)
    ctx.obj = settings


@app.command("estimate")
def estimate(
    days: float = typer.Option(..., "--days", help="Estimated duration in days"),
    unknowns: str = typer.Option("None", "--unknowns", help=f"One of: {', '.join(UNKNOWNS_LEVELS)}"),
    integration: str = typer.Option(
        "Single system", "--integration", help=f"One of: {', '.join(INTEGRATION_LEVELS)}"
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Convert an estimate into Fibonacci story points."""
    _check_format(format, "E_ESTIMATE_UNKNOWN_FORMAT")
    errors: list[HubError] = []
    if unknowns not in UNKNOWNS_LEVELS:
        errors.append(
            HubValidationError(
                code="E_INVALID_ENUM",
                message=f"unknowns must be one of {list(UNKNOWNS_LEVELS)}",
                path="unknowns",
            )
        )
    if integration not in INTEGRATION_LEVELS:
        errors.append(
            HubValidationError(
                code="E_INVALID_ENUM",
                message=f"integration must be one of {list(INTEGRATION_LEVELS)}",
                path="integration",
            )
        )
    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)

    sp = compute_story_points(days, unknowns, integration)
    if format == "json":
        _emit_json("estimate", {"result": asdict(sp)})
        return

    typer.echo(
        f"base={sp.base} unknowns=+{sp.unknowns_adj} integration=+{sp.integration_adj} raw={sp.raw}"
    )
    typer.echo(f"Story points: {sp.final}")
    for flag in sp.flags:
        typer.echo(f"WARN: {flag}")


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a program file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a program file."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    def _to_item(e: HubError) -> dict:
        source = "load" if isinstance(e, HubLoadError) else "validate"
        return {
            "code": e.code,
            "message": e.message,
            "file": e.file,
            "path": e.path,
            "severity": "error",
            "source": source,
        }

    try:
        doc = load_program(path)
    except HubLoadError as e:
        if format == "json":
            _emit_json("validate", {"errors": [_to_item(e)], "summary": None}, ok=False, exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    program, errors = validate_program(doc)
    if errors or program is None:
        if format == "json":
            _emit_json(
                "validate",
                {"errors": [_to_item(e) for e in errors], "error_count": len(errors), "summary": None},
                ok=False,
                exit_code=2,
            )
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_program(program))
        return

    _emit_json(
        "validate",
        {
            "errors": [],
            "error_count": 0,
            "summary": {
                "program_id": program.id,
                "workstream_count": len(program.workstreams),
                "subcomponent_count": sum(len(ws.subcomponents) for ws in program.workstreams),
                "total_points": initiative_total_points(program.workstreams),
            },
        },
    )


@app.command("rollup")
def rollup(
    path: str = typer.Argument(..., help="Path to a program file (.yaml/.yml/.json)"),
    owner: Optional[str] = typer.Option(None, "--owner", help="Only subcomponents owned by this id"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Roll story points up through subcomponents, workstreams and the program."""
    _check_format(format, "E_ROLLUP_UNKNOWN_FORMAT")
    program = _load_valid_program(path)

    # with --owner every number below covers only the owner's subcomponents
    scoped = list(program.workstreams)
    if owner is not None:
        scoped = [
            replace(ws, subcomponents=tuple(s for s in ws.subcomponents if s.owner_id == owner))
            for ws in program.workstreams
        ]
        scoped = [ws for ws in scoped if ws.subcomponents]
        total = owner_total_points(program.workstreams, owner)
        completed = owner_completed_points(program.workstreams, owner)
        pct = percent_of(completed, total)
    else:
        total = initiative_total_points(scoped)
        completed = initiative_completed_points(scoped)
        pct = initiative_percent(scoped)

    workstreams: list[dict[str, Any]] = []
    for ws in scoped:
        subs = [
            {
                "id": s.id,
                "name": s.name,
                "owner_id": s.owner_id,
                "total_points": subcomponent_total_points(s),
                "completed_points": subcomponent_completed_points(s),
                "percent": subcomponent_percent(s),
            }
            for s in ws.subcomponents
        ]
        workstreams.append(
            {
                "id": ws.id,
                "name": ws.name,
                "total_points": workstream_total_points(ws),
                "completed_points": workstream_completed_points(ws),
                "percent": workstream_percent(ws),
                "weighted_percent": workstream_weighted_percent(ws),
                "added_points": workstream_added_points(ws),
                "subcomponents": subs,
            }
        )

    totals = live_totals(scoped)
    if format == "json":
        _emit_json(
            "rollup",
            {
                "program_id": program.id,
                "owner": owner,
                "total_points": total,
                "completed_points": completed,
                "percent": pct,
                "base_points": totals.base_points,
                "scope_points": totals.scope_points,
                "workstreams": workstreams,
            },
        )
        return

    console = Console()
    for ws in workstreams:
        table = Table(title=f"{ws['name']} ({ws['completed_points']}/{ws['total_points']} pts, {ws['percent']}%)")
        table.add_column("Subcomponent")
        table.add_column("Owner")
        table.add_column("Done", justify="right")
        table.add_column("Total", justify="right")
        table.add_column("%", justify="right")
        for s in ws["subcomponents"]:
            table.add_row(
                s["name"],
                s["owner_id"] or "-",
                str(s["completed_points"]),
                str(s["total_points"]),
                str(s["percent"]),
            )
        console.print(table)

    scope = f" owner={owner}" if owner else ""
    typer.echo(f"{program.name}{scope}: {completed}/{total} pts ({pct}%)")
    if totals.scope_points != totals.base_points:
        typer.echo(f"Added scope: {totals.scope_points - totals.base_points} pts")


@app.command("timeline")
def timeline(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a program file (.yaml/.yml/.json)"),
) -> None:
    """List the monthly periods a program's burndown spans."""
    program = _load_valid_program(path)
    settings = _settings(ctx)
    current = get_current_period(settings.clock())
    periods = build_timeline(program)
    for p in periods:
        marker = "  <- current" if p.date_key == current.date_key else ""
        typer.echo(f"{p.date_key}  {p.label}{marker}")
    typer.echo(f"{len(periods)} periods")


@app.command("burndown")
def burndown(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a program file (.yaml/.yml/.json)"),
    snapshots_file: Optional[str] = typer.Option(
        None, "--snapshots", help="Snapshot file (defaults to settings.snapshot_file)"
    ),
    workstream: Optional[str] = typer.Option(None, "--workstream", help="Chart one workstream"),
    subcomponent: Optional[str] = typer.Option(
        None, "--subcomponent", help="Chart one subcomponent (requires --workstream)"
    ),
    organization: Optional[str] = typer.Option(
        None, "--organization", help="Program chart for one assigned organization"
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Build burndown series (ideal, scope-adjusted, remaining)."""
    _check_format(format, "E_BURNDOWN_UNKNOWN_FORMAT")
    program = _load_valid_program(path)
    settings = _settings(ctx)
    store = _load_store(snapshots_file or settings.snapshot_file)
    snaps = store.for_program(program.id)
    clock = settings.clock()

    if subcomponent is not None and workstream is None:
        _print_errors(
            [
                HubValidationError(
                    code="E_BURNDOWN_MISSING_WORKSTREAM",
                    message="--subcomponent requires --workstream",
                    path="subcomponent",
                )
            ]
        )
        raise typer.Exit(code=2)

    if workstream is not None:
        ws = next((w for w in program.workstreams if w.id == workstream), None)
        if ws is None:
            _unknown_id("workstream", workstream, program)
        assert ws is not None
        if subcomponent is not None:
            sub = next((s for s in ws.subcomponents if s.id == subcomponent), None)
            if sub is None:
                _unknown_id("subcomponent", subcomponent, program)
            assert sub is not None
            chart = subcomponent_burndown(program, ws, sub, snaps, clock)
        else:
            chart = workstream_burndown(program, ws, snaps, clock)
    else:
        chart = program_burndown(program, snaps, clock, organization=organization)

    if format == "json":
        _emit_json("burndown", {"chart": asdict(chart)})
        return
    _print_chart(chart)


@app.command("snapshot")
def snapshot(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a program file (.yaml/.yml/.json)"),
    snapshots_file: Optional[str] = typer.Option(
        None, "--snapshots", help="Snapshot file (defaults to settings.snapshot_file)"
    ),
) -> None:
    """Save the current month's snapshot (re-running overwrites it)."""
    program = _load_valid_program(path)
    settings = _settings(ctx)
    target = snapshots_file or settings.snapshot_file
    store = _load_store(target)

    snap = save_monthly_snapshot(store, program, clock=settings.clock())
    store.dump(target)
    typer.echo(
        f"OK: saved {snap.program_id} {snap.date} "
        f"({snap.completed_points}/{snap.total_points} pts, {snap.percent_complete:.1f}%) to {target}"
    )


@app.command("snapshots")
def snapshots(
    ctx: typer.Context,
    snapshots_file: Optional[str] = typer.Option(
        None, "--snapshots", help="Snapshot file (defaults to settings.snapshot_file)"
    ),
    program_id: Optional[str] = typer.Option(None, "--program", help="Only this program"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """List stored snapshots."""
    _check_format(format, "E_SNAPSHOTS_UNKNOWN_FORMAT")
    settings = _settings(ctx)
    store = _load_store(snapshots_file or settings.snapshot_file)
    snaps = store.for_program(program_id) if program_id else store.all()

    if format == "json":
        _emit_json("snapshots", {"snapshots": [snapshot_to_dict(s) for s in snaps]})
        return
    if not snaps:
        typer.echo("No snapshots.")
        return
    for s in snaps:
        typer.echo(
            f"{s.program_id}  {s.date}  {s.completed_points}/{s.total_points} pts  {s.percent_complete:.1f}%"
        )


def _print_chart(chart: BurndownChart) -> None:
    table = Table(
        title=f"{chart.name} burndown ({chart.completed_points}/{chart.total_points} pts)"
    )
    table.add_column("Period")
    table.add_column("Remaining", justify="right")
    table.add_column("Ideal", justify="right")
    table.add_column("Scope", justify="right")
    table.add_column("Note")
    for p in chart.points:
        notes = []
        if p.is_current:
            notes.append("now")
        if p.scope_changed:
            notes.append("scope changed")
        table.add_row(
            p.label,
            "-" if p.remaining is None else str(p.remaining),
            str(p.ideal),
            str(p.scope_line),
            ", ".join(notes),
        )
    Console().print(table)


def _settings(ctx: typer.Context) -> HubSettings:
    settings = ctx.find_object(HubSettings)
    if settings is None:  # pragma: no cover
        settings = load_and_merge(None)
    return settings


def _load_valid_program(path: str) -> Program:
    try:
        doc = load_program(path)
    except HubLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    program, errors = validate_program(doc)
    if errors or program is None:
        logger.debug("%s failed validation with %d errors", path, len(errors))
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    logger.debug("loaded %s (%s, %d workstreams)", path, program.id, len(program.workstreams))
    return program


def _load_store(path: str) -> SnapshotStore:
    try:
        store = load_snapshot_file(path)
    except HubLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    logger.debug("loaded %d snapshots from %s", len(store), path)
    return store


def _unknown_id(kind: str, value: str, program: Program) -> None:
    _print_errors(
        [
            HubValidationError(
                code=f"E_BURNDOWN_UNKNOWN_{kind.upper()}",
                message=f"--{kind} references unknown id: {value}",
                file=None,
                path=kind,
            )
        ]
    )
    raise typer.Exit(code=2)


def _check_format(format: str, code: str) -> None:
    if format not in FORMATS:
        err = HubValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: {', '.join(FORMATS)})",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _emit_json(command: str, data: dict[str, Any], *, ok: bool = True, exit_code: int = 0) -> None:
    payload = {"tool": "neuron-hub", "command": command, "ok": ok, **data}
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
    if exit_code:
        raise typer.Exit(code=exit_code)


def _print_errors(errors: list[HubError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="neuron-hub")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
