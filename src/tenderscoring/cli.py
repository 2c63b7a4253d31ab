"""Typer CLI entrypoint for the tender evaluation engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
import yaml

from .config import ConfigManager
from .container import create_container
from .errors import ScoringError
from .logging import configure_logging
from .pipeline import AuditLogger, EventLog, RubricLoader
from .schemas.config import load_config

app = typer.Typer(help="Tender evaluation and ranking CLI.")


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    if config.suffix.lower() not in {".yaml", ".yml"}:
        raise typer.BadParameter("Config file must be YAML", param_name="config")
    try:
        loaded = ConfigManager(config.parent).load(config.stem)
    except (ValueError, yaml.YAMLError) as exc:
        raise typer.BadParameter(str(exc), param_name="config") from exc
    try:
        return load_config(loaded).to_settings()
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_name="config") from exc


@app.command()
def evaluate(
    rubric: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Rubric definition (YAML or JSON)."),
    matrix: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Matrix setup (YAML or JSON)."),
    scores: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Score submissions JSONL path."),
    output: Path = typer.Option(
        ...,
        exists=False,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Output JSON path.",
    ),
    csv_output: Optional[Path] = typer.Option(None, "--csv", dir_okay=False, help="Rankings CSV output path."),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    log_level: str = typer.Option("INFO", help="Log level for structured logging."),
    audit_log: Optional[Path] = typer.Option(None, dir_okay=False, help="Audit log output (JSONL)."),
    events_log: Optional[Path] = typer.Option(None, dir_okay=False, help="Matrix event output (JSONL)."),
    chair: str = typer.Option("chair", help="Actor id recorded for chair actions."),
) -> None:
    """Score every submission, rank vendors and write the results."""
    settings = _load_settings(config)

    configure_logging(log_level)

    container = create_container(settings=settings)
    pipeline = container.pipeline()
    audit_logger = AuditLogger(audit_log) if audit_log else None
    event_log = EventLog(events_log) if events_log else None

    try:
        evaluated = pipeline.run(
            rubric_path=rubric,
            matrix_path=matrix,
            scores_path=scores,
            output_path=output,
            csv_path=csv_output,
            audit_logger=audit_logger,
            event_log=event_log,
            chair_id=chair,
        )
    except ScoringError as exc:
        typer.echo(f"Evaluation failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    results = evaluated.results()
    award = results.recommended_award or "none"
    typer.echo(
        f"Ranked {results.total_evaluated} vendors; recommended award: {award}. "
        f"Results saved to {output}."
    )


@app.command("validate-rubric")
def validate_rubric(
    rubric: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Rubric definition (YAML or JSON)."),
) -> None:
    """Check that a rubric definition can be activated."""
    container = create_container()
    try:
        loaded = RubricLoader(container.rubric_store()).load(rubric)
    except ScoringError as exc:
        typer.echo(f"Rubric is invalid: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(
        f"Rubric {loaded.id} v{loaded.version} is valid "
        f"({len(loaded.criteria)} criteria, total weight {loaded.total_weight:g})."
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
