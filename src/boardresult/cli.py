from __future__ import annotations

import json
import logging
import sys
from typing import Optional

import typer

from .workflows.doctor import (
    build_doctor_report,
    build_monitoring_report,
    format_doctor_report,
    format_monitoring_report,
)
from .workflows.errors import ResultError
from .workflows.records import ResultQuery, ResultRecord
from .workflows.retriever import ResultRetriever, _run_in_fetch_loop

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """Board result retrieval

Usage:
  boardresult get <board> <exam> <roll> <registration> [--eiin <N>] [--json] [--report] [--verbose]
  boardresult doctor

Common options:
  --eiin <N>      Institution code (optional).
  --json          Print the result record as JSON.
  --report        Append the monitoring report.
  --verbose       Log retrieval progress to stderr.

Discoverability:
  --help-full     Expanded help + env vars + exit codes.
  --doctor        Run environment diagnostics and exit.
"""


def _help_full() -> str:
    return """Board result retrieval CLI

Commands:
  get      Fetch one exam result (board, exam, roll, registration).
  doctor   Print configuration diagnostics.

Boards:
  dhaka chittagong rajshahi sylhet barisal dinajpur comilla jessore
  mymensingh madrasah technical

Exams:
  ssc hsc jsc

Environment variables (.env is loaded):
  BOARDRESULT_BASE_URL            Board site base URL.
  BOARDRESULT_MAX_ATTEMPTS        Upstream attempts per lookup (3).
  BOARDRESULT_BACKOFF             CSV of backoff seconds (1,2,4).
  BOARDRESULT_FALLBACK_URLS       CSV of JSON fallback URL templates.
  BOARDRESULT_CACHE_TTL           Cache validity in seconds (86400).
  BOARDRESULT_CACHE_MAX_ENTRIES   Cache entry cap (1000).
  BOARDRESULT_CACHE_DISABLE       Disable the result cache.
  BOARDRESULT_DEMO_DISABLE        Disable the demo roll/registration.
  BOARDRESULT_RECORD_CACHE_HITS   Count cache hits in health metrics.
  BOARDRESULT_ALERT_THRESHOLD     Consecutive failures before alerting (5).
  BOARDRESULT_ALERT_WEBHOOK       POST alerts to this URL.

Exit codes:
  0  result printed
  1  retrieval failed (message on stderr)
  2  invalid input, or doctor found a warn-level problem

Demo:
  roll 123456 with registration 1234567890 returns a canned record offline.
"""


def _format_record(record: ResultRecord) -> str:
    lines = [
        f"Name:         {record.student_name}",
        f"Father:       {record.father_name}",
        f"Mother:       {record.mother_name}",
        f"Roll:         {record.roll}",
        f"Registration: {record.registration}",
        f"Institution:  {record.institution}",
        f"Group:        {record.group}",
        f"Session:      {record.session}",
        f"GPA:          {record.gpa} ({record.grade})",
        f"Result:       {record.result}",
        "",
        "Subjects:",
    ]
    for subject in record.subjects:
        lines.append(f"  {subject.name:<32} {subject.marks:>6} {subject.grade:>4} {subject.gpa:>6}")
    return "\n".join(lines) + "\n"


def _run_doctor() -> None:
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run environment diagnostics and exit."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if doctor:
        _run_doctor()
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print configuration diagnostics."""
    _run_doctor()


@app.command("get", add_help_option=True)
def get_result(
    board: str = typer.Argument(..., help="Education board, e.g. dhaka."),
    exam: str = typer.Argument(..., help="Exam: ssc, hsc or jsc."),
    roll: str = typer.Argument(..., help="Roll number (digits)."),
    registration: str = typer.Argument(..., help="Registration number (digits)."),
    eiin: Optional[str] = typer.Option(None, "--eiin", help="Institution code (digits)."),
    json_out: bool = typer.Option(False, "--json", help="Print the result record as JSON."),
    report: bool = typer.Option(False, "--report", help="Append the monitoring report."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log retrieval progress to stderr."),
) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        query = ResultQuery(board=board, exam=exam, roll=roll, registration=registration, eiin=eiin)
    except ValueError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    retriever = ResultRetriever()
    exit_code = 0
    try:
        record = _run_in_fetch_loop(retriever.fetch_result(query))
    except ResultError as exc:
        typer.echo(f"error: {exc.message}", err=True)
        record = None
        exit_code = 1
    _run_in_fetch_loop(retriever.monitor.drain_alerts())

    if record is not None:
        if json_out:
            sys.stdout.write(record.to_json() + "\n")
        else:
            typer.echo(_format_record(record))
    if report:
        monitoring = build_monitoring_report(retriever.monitor, retriever.get_cache_stats())
        if json_out:
            sys.stdout.write(json.dumps(monitoring, ensure_ascii=False) + "\n")
        else:
            typer.echo(format_monitoring_report(monitoring))
    raise typer.Exit(code=exit_code)
