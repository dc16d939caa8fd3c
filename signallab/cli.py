"""SignalLab command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from signallab.core.config import dump_config_to_yaml, load_config
from signallab.core.research.strategy import (
    Strategy,
    get_strategy_template,
    get_strategy_templates,
    load_strategy_file,
)
from signallab.core.services.backtest_service import run_backtest_from_config
from signallab.core.utils.errors import exit_code_for_exception
from signallab.core.utils.logging import configure_logging, get_logger

app = typer.Typer(help="SignalLab CLI", no_args_is_help=True)

RUN_CONFIG_OPTION = typer.Option(
    ...,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Path to YAML configuration file.",
)
RUN_STRATEGY_OPTION = typer.Option(
    None,
    "--strategy",
    help="Template id or strategy YAML path overriding the configured strategy.",
)
LOG_LEVEL_OPTION = typer.Option("INFO", "--log-level", help="Logging level.")

VALIDATE_CONFIG_OPTION = typer.Option(
    ...,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Path to YAML configuration file.",
)

TEMPLATE_ID_OPTION = typer.Option(None, "--id", help="Print one template as JSON.")


@app.callback()
def callback() -> None:
    """SignalLab CLI commands."""


def _print_metrics(metrics: dict[str, float]) -> None:
    """Print headline backtest metrics in deterministic order."""
    metric_order = [
        "total_return",
        "annualized_return",
        "sharpe_ratio",
        "sortino_ratio",
        "max_drawdown",
        "volatility",
        "win_rate",
        "profit_factor",
        "calmar_ratio",
        "alpha",
        "beta",
        "total_trades",
        "final_portfolio_value",
    ]
    for key in metric_order:
        if key in metrics:
            typer.echo(f"{key}={metrics[key]:.6f}")


def _handle_cli_exception(logger_name: str, context: str, exc: Exception) -> None:
    """Log diagnostics and exit with the typed code for ``exc``."""
    logger = get_logger(logger_name)
    logger.exception("%s failed: %s", context, exc)
    raise typer.Exit(code=exit_code_for_exception(exc)) from None


def _resolve_strategy_override(value: str | None) -> Strategy | None:
    """Interpret ``--strategy`` as a YAML path when it looks like one, else a template id."""
    if value is None:
        return None
    candidate = Path(value)
    if candidate.suffix.lower() in {".yaml", ".yml"} or candidate.is_file():
        return load_strategy_file(candidate)
    return get_strategy_template(value)


@app.command("run")
def run(
    config: Path = RUN_CONFIG_OPTION,
    strategy: str | None = RUN_STRATEGY_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Run one backtest from YAML config and write its artifacts."""
    logger_name = __name__

    try:
        configure_logging(log_level)
        outcome = run_backtest_from_config(
            config_path=config,
            strategy_override=_resolve_strategy_override(strategy),
            progress_callback=typer.echo,
        )
    except Exception as exc:
        _handle_cli_exception(logger_name=logger_name, context="Run command", exc=exc)

    typer.echo(f"run_id={outcome.run_id}")
    typer.echo(f"strategy={outcome.strategy_id}")
    typer.echo(f"assets={','.join(outcome.assets)}")
    _print_metrics(outcome.metrics)
    for path in outcome.artifact_paths:
        typer.echo(f"artifact={path}")
    typer.echo(f"manifest={outcome.manifest_path}")


@app.command("validate-config")
def validate_config(config: Path = VALIDATE_CONFIG_OPTION) -> None:
    """Validate a YAML config and print its normalized form."""
    configure_logging()
    logger_name = __name__

    try:
        app_config = load_config(config)
        resolved_strategy = app_config.resolve_strategy()
    except Exception as exc:
        _handle_cli_exception(logger_name=logger_name, context="Validate command", exc=exc)

    typer.echo(f"strategy={resolved_strategy.id}")
    typer.echo(dump_config_to_yaml(app_config).rstrip())


@app.command("templates")
def templates(template_id: str | None = TEMPLATE_ID_OPTION) -> None:
    """List built-in strategy templates, or print one as JSON."""
    configure_logging()
    logger_name = __name__

    if template_id is None:
        for template in get_strategy_templates():
            typer.echo(f"{template.id} | {template.name} | {template.description}")
        return

    try:
        template = get_strategy_template(template_id)
    except Exception as exc:
        _handle_cli_exception(logger_name=logger_name, context="Templates command", exc=exc)

    typer.echo(json.dumps(template.model_dump(mode="json"), indent=2, sort_keys=True))


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
