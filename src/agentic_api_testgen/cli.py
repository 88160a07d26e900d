"""CLI entrypoint for the API test generator."""

import json
import time
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from agentic_api_testgen.config import Config, ConfigError, load_config

# Load .env file on CLI startup
load_dotenv()


def _build_orchestrator(config: Config):
    """Wire the generation router, spec store and orchestrator for one CLI call."""
    from agentic_api_testgen.generation import build_router
    from agentic_api_testgen.orchestrator import AgentOrchestrator
    from agentic_api_testgen.spec_store import SpecStore

    return AgentOrchestrator(build_router(config), SpecStore(), config=config)


def _split_csv(value: Optional[str]) -> tuple:
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _load_cli_config() -> Config:
    try:
        config = load_config(require_llm=True)
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(1)

    from agentic_api_testgen.logging_setup import setup_logging
    setup_logging(config.log_level, config.log_file)
    return config


@click.group()
@click.version_option(package_name="agentic-api-testgen")
def cli():
    """Agentic API test generator - plan, write, run and self-heal REST API tests."""
    pass


@cli.command()
def check_config():
    """Check if required environment variables are configured."""
    try:
        config = load_config(require_llm=True)
    except ConfigError as e:
        click.echo(f"Configuration error:\n{e}", err=True)
        raise SystemExit(1)

    click.echo("Configuration loaded successfully!")
    if config.openrouter_api_key:
        models = [config.model] + config.fallback_models
        click.echo(f"  OPENROUTER_API_KEY: [set] (models: {', '.join(models)})")
    if config.local_llm_base_url:
        click.echo(f"  LOCAL_LLM_BASE_URL: {config.local_llm_base_url} (model: {config.local_llm_model})")
    click.echo(f"  Output dir: {config.output_dir}")
    click.echo(f"  Build command: {config.build_command}")
    click.echo(f"  Max iterations: {config.max_iterations}")


@cli.command()
@click.option(
    "--spec", "spec_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a normalized API spec (YAML or JSON)",
)
@click.option(
    "--out",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the plan JSON here (default: stdout)",
)
def plan(spec_file: str, out: Optional[str]):
    """Run only the planner and output the test plan."""
    from agentic_api_testgen.generation import GenerationError, build_router
    from agentic_api_testgen.models import to_dict
    from agentic_api_testgen.planner import PlannerAgent
    from agentic_api_testgen.spec_store import SpecFormatError, load_normalized_spec

    config = _load_cli_config()

    try:
        spec = load_normalized_spec(Path(spec_file))
        planner = PlannerAgent(build_router(config))
        test_plan = planner.plan(spec)
    except SpecFormatError as e:
        click.echo(f"Spec error: {e}", err=True)
        raise SystemExit(1)
    except GenerationError as e:
        click.echo(f"Generation error: {e}", err=True)
        raise SystemExit(1)

    plan_json = json.dumps(to_dict(test_plan), indent=2)
    if out:
        out_path = Path(out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(plan_json, encoding="utf-8")
        click.echo(f"Plan written to {out_path} ({len(test_plan.items)} tests)", err=True)
    else:
        click.echo(plan_json)


@cli.command()
@click.option(
    "--spec", "spec_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a normalized API spec (YAML or JSON)",
)
@click.option("--max-iterations", type=int, default=None, help="Execute/reflect/fix cycles (default: TESTGEN_MAX_ITERATIONS)")
@click.option("--output-dir", type=click.Path(), default=None, help="Base directory for generated suites")
@click.option("--namespace", default=None, help="Java base package for generated tests")
@click.option("--no-execute", is_flag=True, help="Stop after writing the suite")
@click.option("--tags", default=None, help="Comma-separated tags to restrict operations to")
@click.option("--operations", default=None, help="Comma-separated operation ids to restrict to")
@click.option(
    "--reports-dir",
    type=click.Path(),
    default="reports/runs",
    help="Directory for run reports (default: reports/runs)",
)
@click.option("--poll-interval", type=float, default=1.0, help="Seconds between status polls")
def run(
    spec_file: str,
    max_iterations: Optional[int],
    output_dir: Optional[str],
    namespace: Optional[str],
    no_execute: bool,
    tags: Optional[str],
    operations: Optional[str],
    reports_dir: str,
    poll_interval: float,
):
    """Generate, run and self-heal a test suite for an API spec."""
    from agentic_api_testgen.constants import DEFAULT_NAMESPACE
    from agentic_api_testgen.models import OperationFilter, RunConfig, to_dict
    from agentic_api_testgen.orchestrator import RunConfigError
    from agentic_api_testgen.run_report import print_summary, write_run_report
    from agentic_api_testgen.spec_store import SpecFormatError, SpecNotFoundError

    if tags and operations:
        click.echo("Error: use either --tags or --operations, not both.", err=True)
        raise SystemExit(1)

    config = _load_cli_config()
    orchestrator = _build_orchestrator(config)

    if tags:
        op_filter = OperationFilter(mode="tag", tags=_split_csv(tags))
    elif operations:
        op_filter = OperationFilter(mode="single", operation_ids=_split_csv(operations))
    else:
        op_filter = OperationFilter()

    try:
        spec = orchestrator.spec_store.load_file(Path(spec_file))
        run_config = RunConfig(
            spec_id=spec.id,
            max_iterations=max_iterations if max_iterations is not None else config.max_iterations,
            base_directory=output_dir or config.output_dir,
            namespace=namespace or DEFAULT_NAMESPACE,
            auto_execute=not no_execute,
            operation_filter=op_filter,
        )
        run_id = orchestrator.start_run(run_config)
    except (SpecFormatError, SpecNotFoundError, RunConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        orchestrator.shutdown(wait=False)
        raise SystemExit(1)

    click.echo(f"Started run {run_id}")
    click.echo(f"  Spec: {spec.title} ({spec.id})")
    click.echo()

    shown = 0
    try:
        while True:
            status = orchestrator.get_status(run_id)
            for entry in status.log[shown:]:
                click.echo(f"  [{entry.phase}] {entry.message}")
            shown = len(status.log)
            if status.is_terminal:
                break
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        click.echo("\nInterrupted; the run was abandoned.", err=True)
        orchestrator.shutdown(wait=False)
        raise SystemExit(1)
    orchestrator.shutdown(wait=True)

    report_path = write_run_report(status, Path(reports_dir))
    click.echo()
    print_summary(to_dict(status))
    click.echo(f"Report: {report_path}")

    if status.phase == "failed":
        raise SystemExit(1)


@cli.command()
@click.argument("run_id")
@click.option(
    "--reports-dir",
    type=click.Path(),
    default="reports/runs",
    help="Directory for run reports",
)
def summary(run_id: str, reports_dir: str):
    """Show the summary of a saved run report.

    RUN_ID: The run identifier printed by `testgen run`
    """
    from agentic_api_testgen.run_report import load_run_report, print_summary

    report = load_run_report(run_id, Path(reports_dir))
    if report is None:
        click.echo(f"No run report found for {run_id} in {reports_dir}", err=True)
        raise SystemExit(1)
    print_summary(report)


if __name__ == "__main__":
    cli()
