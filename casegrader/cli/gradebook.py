"""Command-line access to the grading service: ingest, submit, and inspect results."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, NoReturn, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from casegrader.core.errors import GradingError
from casegrader.core.policy import CompletionPolicy, ResubmissionPolicy, parse_completion_flag
from casegrader.grading.aggregator import SubmitOutcome
from casegrader.service.bootstrap import STORE_ENV, bootstrap_service, resolve_config
from casegrader.service.engine import GradingService
from gradebook.ingest import ingest_assignments
from gradebook.storage import GradebookStore

DEFAULT_STORE = Path("outputs") / "gradebook.sqlite"

app = typer.Typer(help="Grade case-coding submissions and report completion.")
console = Console()

STORE_OPTION = typer.Option(
    None,
    "--store",
    show_default=False,
    help=f"SQLite gradebook path (defaults to {STORE_ENV}, the config's SQLite store, or {DEFAULT_STORE}).",
)
CONFIG_OPTION = typer.Option(None, "--config", show_default=False, help="Grading config YAML.")
JSON_OPTION = typer.Option(False, "--json", help="Emit JSON instead of a table.")
POLICY_OPTION = typer.Option(
    None,
    "--policy",
    show_default=False,
    help="Completion switches, comma separated (strict, ids_only).",
)


def _resolve_store(path: Path | None, config: Path | None) -> Path | None:
    """Pick the SQLite file: option, then env, then the config's own store.

    Returns ``None`` when the resolved config already points at SQLite so its
    ``sqlite_path`` is used; a memory-backed config falls back to the default file.
    """

    if path is not None:
        return path.expanduser().resolve()
    env_store = os.environ.get(STORE_ENV)
    if env_store:
        return Path(env_store).expanduser().resolve()
    if resolve_config(config).store.backend == "sqlite":
        return None
    return DEFAULT_STORE.resolve()


def _service(
    store: Path | None,
    config: Path | None,
    policy_overrides: Dict[str, Any] | None = None,
) -> GradingService:
    service = bootstrap_service(
        config_path=config,
        store_path=_resolve_store(store, config),
        policy_overrides=policy_overrides,
    )
    logging.basicConfig(
        level=getattr(logging, service.config.log_level, logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )
    return service


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=1)


def _completion_policy(flag: str | None) -> CompletionPolicy | None:
    if not flag:
        return None
    try:
        return parse_completion_flag(flag)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _read_parts(path: Path) -> Any:
    if not path.exists():
        raise typer.BadParameter(f"Parts file not found at {path}")
    text = path.read_text(encoding="utf-8")
    data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    if isinstance(data, dict) and "parts" in data:
        return data["parts"]
    return data


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _print_table(headers: List[str], rows: Iterable[Dict[str, Any]], keys: List[str]) -> None:
    table = Table(*headers)
    for row in rows:
        table.add_row(*["" if row.get(key) is None else str(row.get(key)) for key in keys])
    console.print(table)


def _outcome_payload(outcome: SubmitOutcome) -> Dict[str, Any]:
    return {
        "submission": outcome.submission.to_document(),
        "graded": outcome.graded,
        "replaced": outcome.replaced,
        "skipped": [
            {"part_id": entry.part_id, "reason": entry.reason, "detail": entry.detail} for entry in outcome.skipped
        ],
        "stored": outcome.stored,
        "version": outcome.version,
    }


def _print_outcome(outcome: SubmitOutcome) -> None:
    submission = outcome.submission
    rows = [
        {
            "part": part.part_id or "parent",
            "mode": part.mode.value,
            "correct": part.correct,
            "wrong": part.wrong,
            "progress": f"{part.progress}%",
        }
        for part in submission.parts
    ]
    _print_table(["Part", "Mode", "Correct", "Wrong", "Progress"], rows, ["part", "mode", "correct", "wrong", "progress"])
    console.print(
        f"Total {submission.total_correct} correct / {submission.total_wrong} wrong "
        f"([bold]{submission.overall_progress}%[/bold])"
    )
    for entry in outcome.skipped:
        console.print(f"[yellow]Skipped {entry.describe()}[/yellow]")


@app.command()
def ingest(
    source: Path = typer.Argument(..., help="Assignment YAML/JSON file or a directory of them."),
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Load assignment definitions into the gradebook."""

    try:
        db_path = resolve_config(config, store_path=_resolve_store(store, config)).store.sqlite_path
        counts = ingest_assignments(source, GradebookStore(db_path))
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        _fail(str(exc))
    console.print(
        f"[green]Ingested {counts['assignments']} assignment(s) "
        f"with {counts['sub_assignments']} sub-assignment(s) from {counts['files']} file(s).[/green]"
    )


@app.command()
def submit(
    student: str = typer.Argument(..., help="Student id."),
    assignment: str = typer.Argument(..., help="Assignment id."),
    parts: Path = typer.Option(..., "--parts", help="JSON/YAML file holding the submitted parts."),
    resubmission: Optional[str] = typer.Option(
        None,
        "--resubmission",
        show_default=False,
        help=f"Override the resubmission policy ({', '.join(ResubmissionPolicy.choices())}).",
    ),
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Grade a submission and merge it into the student's record."""

    overrides = {"resubmission": resubmission} if resubmission else None
    try:
        service = _service(store, config, overrides)
        outcome = service.grade_and_store(student, assignment, _read_parts(parts))
    except (GradingError, ValueError, yaml.YAMLError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json(_outcome_payload(outcome))
        return
    _print_outcome(outcome)


@app.command()
def start(
    student: str = typer.Argument(..., help="Student id."),
    assignment: str = typer.Argument(..., help="Assignment id."),
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Open the timed attempt for a student."""

    try:
        submission = _service(store, config).start_attempt(student, assignment)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    payload = submission.to_document()
    if as_json:
        _echo_json(payload)
        return
    deadline = payload.get("must_submit_by")
    if deadline:
        console.print(f"Attempt started at {payload.get('started_at')}; submit by [bold]{deadline}[/bold].")
    else:
        console.print("[dim]No time limit applies to this assignment.[/dim]")


@app.command()
def completion(
    student: str = typer.Argument(..., help="Student id."),
    assignment: str = typer.Argument(..., help="Assignment id."),
    policy: Optional[str] = POLICY_OPTION,
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Report whether the student's submission is complete."""

    completion_policy = _completion_policy(policy)
    try:
        complete = _service(store, config).completion(student, assignment, completion_policy)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json({"student_id": student, "assignment_id": assignment, "is_completed": complete})
        return
    label = "[green]complete[/green]" if complete else "[yellow]incomplete[/yellow]"
    console.print(f"{student} / {assignment}: {label}")


@app.command()
def stats(
    category: str = typer.Argument(..., help="Assignment category."),
    student: str = typer.Argument(..., help="Student id."),
    policy: Optional[str] = POLICY_OPTION,
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Roll up completion and average score for a category."""

    completion_policy = _completion_policy(policy)
    try:
        report = _service(store, config).category_report(category, student, completion_policy)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json(report.model_dump(mode="json"))
        return
    numbers = report.stats
    console.print(
        f"[bold]{numbers.category}[/bold] for {student}: {numbers.completed}/{numbers.total_assigned} complete, "
        f"{numbers.pending} pending, average {numbers.average_score:.2f}"
    )
    rows = [
        {"assignment": entry.name or entry.assignment_id, "status": "completed", "score": entry.score}
        for entry in report.completed
    ] + [{"assignment": entry.name or entry.assignment_id, "status": "pending", "score": None} for entry in report.pending]
    if rows:
        _print_table(["Assignment", "Status", "Score"], rows, ["assignment", "status", "score"])


@app.command()
def summary(
    student: str = typer.Argument(..., help="Student id."),
    assignment: str = typer.Argument(..., help="Assignment id."),
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Show entered values next to the answer key, part by part."""

    try:
        result = _service(store, config).submission_summary(student, assignment)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json(result.model_dump(mode="json"))
        return
    parts = ([result.parent] if result.parent is not None else []) + list(result.parts)
    rows = [
        {
            "part": part.name or part.part_id or "parent",
            "submitted": "yes" if part.submitted else "no",
            "correct": part.correct,
            "wrong": part.wrong,
            "progress": f"{part.progress}%",
        }
        for part in parts
    ]
    _print_table(["Part", "Submitted", "Correct", "Wrong", "Progress"], rows, ["part", "submitted", "correct", "wrong", "progress"])
    console.print(f"Overall [bold]{result.overall_progress}%[/bold]")


@app.command()
def status(
    student: str = typer.Argument(..., help="Student id."),
    policy: Optional[str] = POLICY_OPTION,
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """List every assignment the student has submitted to, with completion flags."""

    completion_policy = _completion_policy(policy)
    try:
        board = _service(store, config).status_board(student, completion_policy)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json([entry.model_dump(mode="json") for entry in board])
        return
    if not board:
        console.print(f"[yellow]No submissions found for {student}.[/yellow]")
        return
    rows = [
        {
            "assignment": entry.name or entry.assignment_id,
            "category": entry.category,
            "completed": "yes" if entry.is_completed else "no",
            "subs": f"{sum(1 for sub in entry.sub_assignments if sub.is_completed)}/{len(entry.sub_assignments)}",
            "progress": f"{entry.overall_progress}%",
        }
        for entry in board
    ]
    _print_table(
        ["Assignment", "Category", "Completed", "Subs", "Progress"],
        rows,
        ["assignment", "category", "completed", "subs", "progress"],
    )


@app.command()
def roster(
    assignment: str = typer.Argument(..., help="Assignment id."),
    policy: Optional[str] = POLICY_OPTION,
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """List every student's result for one assignment, most recent first."""

    completion_policy = _completion_policy(policy)
    try:
        entries = _service(store, config).assignment_roster(assignment, completion_policy)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json([entry.model_dump(mode="json") for entry in entries])
        return
    if not entries:
        console.print(f"[yellow]No submissions found for {assignment}.[/yellow]")
        return
    rows = [entry.model_dump(mode="json") for entry in entries]
    _print_table(
        ["Student", "Correct", "Wrong", "Progress", "Completed", "Submitted"],
        rows,
        ["student_id", "total_correct", "total_wrong", "overall_progress", "is_completed", "submitted_at"],
    )


@app.command()
def regrade(
    student: str = typer.Argument(..., help="Student id."),
    assignment: str = typer.Argument(..., help="Assignment id."),
    resubmission: Optional[str] = typer.Option(
        None,
        "--resubmission",
        show_default=False,
        help="Override the resubmission policy; 'overwrite' re-grades stored parts.",
    ),
    store: Path | None = STORE_OPTION,
    config: Path | None = CONFIG_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Re-grade a stored submission against the current answer definitions."""

    overrides = {"resubmission": resubmission} if resubmission else None
    try:
        outcome = _service(store, config, overrides).regrade(student, assignment)
    except (GradingError, ValueError) as exc:
        _fail(str(exc))
    if as_json:
        _echo_json(_outcome_payload(outcome))
        return
    _print_outcome(outcome)


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    app()
