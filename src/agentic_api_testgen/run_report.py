"""Run reports: a JSON record of each finished run, and a readable summary.

Read-only once written. Filename: {run_id}.json
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import click

from agentic_api_testgen.models import RunStatus, to_dict

DEFAULT_REPORTS_DIR = Path("reports/runs")


def write_run_report(status: RunStatus, reports_dir: Optional[Path] = None) -> Path:
    """
    Write a run's status snapshot to disk as JSON.

    Returns:
        Path to the report file
    """
    reports_dir = Path(reports_dir or DEFAULT_REPORTS_DIR)
    reports_dir.mkdir(parents=True, exist_ok=True)

    report_path = reports_dir / f"{status.run_id}.json"
    report_path.write_text(json.dumps(to_dict(status), indent=2), encoding="utf-8")
    return report_path


def load_run_report(run_id: str, reports_dir: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """Load a saved report, or None if there is no readable report for run_id."""
    report_path = Path(reports_dir or DEFAULT_REPORTS_DIR) / f"{run_id}.json"
    if not report_path.exists():
        return None
    try:
        return json.loads(report_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None


def format_duration(ms: int) -> str:
    seconds = ms / 1000
    if seconds < 1:
        return f"{ms}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    else:
        mins = int(seconds // 60)
        secs = seconds % 60
        return f"{mins}m {secs:.0f}s"


def print_summary(report: Dict[str, Any]) -> None:
    """
    Print a human-readable summary of a run report.

    Goal: understand the full run in under 30 seconds.
    """
    click.echo("=" * 60)
    click.echo(f"RUN SUMMARY: {report['run_id']}")
    click.echo("=" * 60)
    click.echo()

    click.echo(f"  Phase:       {report['phase']}")
    click.echo(f"  Iterations:  {report['current_iteration']}/{report['max_iterations']}")
    click.echo(f"  Suite:       {report.get('test_suite_path') or '-'}")
    click.echo(f"  Started:     {report['started_at']}")
    click.echo(f"  Completed:   {report.get('completed_at') or '-'}")
    if report.get("error"):
        click.echo(f"  Error:       {report['error']}")
    click.echo()

    plan = report.get("test_plan")
    if plan:
        categories: Dict[str, int] = {}
        for item in plan["items"]:
            categories[item["category"]] = categories.get(item["category"], 0) + 1
        breakdown = ", ".join(f"{count} {name}" for name, count in categories.items())
        click.echo("TEST PLAN")
        click.echo("-" * 40)
        click.echo(f"  {plan['title']}: {len(plan['items'])} tests ({breakdown})")
        click.echo()

    iterations = report.get("iterations") or []
    if iterations:
        click.echo(f"ITERATIONS ({len(iterations)})")
        click.echo("-" * 40)
        for entry in iterations:
            result = entry["execution_result"]
            if result.get("compilation_failed"):
                outcome = "compilation failed"
            else:
                outcome = (
                    f"{result['passed']}/{result['total']} passed, "
                    f"{result['failed']} failed, {result['errors']} errors"
                )
            click.echo(
                f"  [{entry['iteration']}] {outcome} ({format_duration(result['duration_ms'])})"
            )
            reflection = entry.get("reflection")
            if reflection:
                click.echo(f"      {reflection['failure_source']}: {reflection['summary'][:100]}")
                if entry.get("fixes_applied"):
                    click.echo(f"      Fixes applied: {entry['fixes_applied']}")
                if reflection.get("rejected_fixes"):
                    click.echo(f"      Rejected: {', '.join(reflection['rejected_fixes'])}")
        click.echo()

    final = report.get("final_result")
    if final:
        click.echo("FINAL RESULT")
        click.echo("-" * 40)
        verdict = "PASS" if final["success"] else "FAIL"
        click.echo(f"  {verdict}: {final['passed']}/{final['total']} tests passing")
        failing = [
            t for t in final.get("test_results") or []
            if t["status"] in ("failed", "error")
        ]
        for test in failing[:10]:
            message = (test.get("error_message") or "")[:80]
            click.echo(f"    - {test['class_name']}.{test['test_name']}: {message}")
        if len(failing) > 10:
            click.echo(f"    ... and {len(failing) - 10} more")
        click.echo()
