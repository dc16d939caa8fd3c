"""Programmatic service workflows for SignalLab backtest runs."""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from signallab.core.backtest.engine import BacktestEngine
from signallab.core.backtest.types import BacktestResult, EngineSettings
from signallab.core.config import AppConfig, dump_config_to_yaml, load_config
from signallab.core.data.parquet_store import ParquetDataSource
from signallab.core.research.strategy import Strategy
from signallab.core.utils.errors import ArtifactError
from signallab.core.utils.logging import get_logger
from signallab.core.utils.manifest import RunManifestWriter
from signallab.core.utils.plotting import save_portfolio_value_plot

ProgressCallback = Callable[[str], None]
_LOGGER_NAME = "signallab.core.services.backtest_service"


@dataclass(frozen=True)
class RunOutcome:
    """Result payload for one completed backtest run."""

    run_id: str
    strategy_id: str
    assets: list[str]
    metrics: dict[str, float]
    result: BacktestResult
    run_dir: Path
    result_path: Path
    artifact_paths: list[str]
    manifest_path: Path


def _emit_progress(callback: ProgressCallback | None, message: str) -> None:
    """Emit optional progress messages."""
    if callback is not None:
        callback(message)


def new_run_id(strategy_id: str) -> str:
    """Return a unique, sortable run id for ``strategy_id``."""
    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{strategy_id}-{stamp}-{uuid.uuid4().hex[:8]}"


def build_engine(
    data_dir: Path,
    settings: EngineSettings | None = None,
    assets: list[str] | None = None,
    max_workers: int = 1,
) -> BacktestEngine:
    """
    Build an engine over a parquet data directory.

    Args:
        data_dir: Root of the parquet layout.
        settings: Engine settings.
        assets: Optional asset filter.
        max_workers: Loader threads.

    Returns:
        Configured engine.
    """
    return BacktestEngine(
        ParquetDataSource(data_dir),
        settings=settings,
        assets=assets,
        max_workers=max_workers,
    )


def write_result_json(result: BacktestResult, output_dir: Path, filename: str) -> Path:
    """
    Write the full result payload as JSON.

    Raises:
        ArtifactError: If the file cannot be written.
    """
    path = output_dir / filename
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(result.to_dict(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
    except OSError as exc:
        raise ArtifactError(f"Failed to write result file {path}: {exc}") from exc
    return path


def run_backtest_with_config(
    app_config: AppConfig,
    strategy_override: Strategy | None = None,
    config_path: Path | None = None,
    progress_callback: ProgressCallback | None = None,
) -> RunOutcome:
    """
    Run one backtest from an in-memory config and write its artifacts.

    Args:
        app_config: Validated application config.
        strategy_override: Strategy to run instead of the configured one.
        config_path: Source config file, recorded in the manifest.
        progress_callback: Optional callback for status messages.

    Returns:
        Completed run outcome.
    """
    logger = get_logger(_LOGGER_NAME)
    manifest_writer: RunManifestWriter | None = None

    try:
        strategy = strategy_override or app_config.resolve_strategy()
        strategy_source = "override" if strategy_override else app_config.strategy.source_label
        run_id = new_run_id(strategy.id)
        run_dir = app_config.output.artifacts_dir / run_id
        manifest_writer = RunManifestWriter(output_dir=run_dir, command="run", run_id=run_id)
        manifest_writer.set_inputs(
            config_path=config_path,
            data_dir=app_config.data.data_dir,
            strategy_source=strategy_source,
        )

        start = app_config.data.start.isoformat()
        end = app_config.data.end.isoformat()
        initial_capital = app_config.engine.initial_capital
        manifest_writer.set_context(
            strategy_id=strategy.id,
            start=start,
            end=end,
            initial_capital=initial_capital,
            assets=app_config.data.assets,
        )

        engine = build_engine(
            app_config.data.data_dir,
            settings=app_config.to_engine_settings(),
            assets=app_config.data.assets,
            max_workers=app_config.data.max_workers,
        )
        manifest_writer.set_engine(asdict(engine.settings))
        _emit_progress(progress_callback, f"Loading data from {app_config.data.data_dir}")
        data_by_asset = engine.loader.load(start, end)
        assets = sorted(data_by_asset)
        _emit_progress(
            progress_callback,
            f"Simulating {strategy.id} over {len(assets)} assets from {start} to {end}",
        )
        manifest_writer.set_context(
            strategy_id=strategy.id,
            start=start,
            end=end,
            initial_capital=initial_capital,
            assets=assets,
        )

        result = engine.simulate(strategy, data_by_asset, start, end, initial_capital)

        result_path = write_result_json(result, run_dir, app_config.output.result_filename)
        artifact_paths = [str(result_path)]
        config_snapshot = run_dir / "config.yaml"
        try:
            config_snapshot.write_text(dump_config_to_yaml(app_config), encoding="utf-8")
        except OSError as exc:
            raise ArtifactError(
                f"Failed to write config snapshot {config_snapshot}: {exc}"
            ) from exc
        artifact_paths.append(str(config_snapshot))
        if app_config.output.save_portfolio_plot:
            plot_path = save_portfolio_value_plot(
                result.snapshots_frame(),
                output_dir=run_dir,
                filename=app_config.output.plot_filename,
                title=f"{strategy.name} portfolio value",
            )
            artifact_paths.append(str(plot_path))

        metrics = result.metrics_summary()
        manifest_writer.mark_success(
            metrics=metrics,
            artifact_paths=artifact_paths,
            extra={"final_portfolio_value": result.final_portfolio_value},
        )
        manifest_path = manifest_writer.write()
        _emit_progress(progress_callback, f"Run {run_id} written to {run_dir}")

        return RunOutcome(
            run_id=run_id,
            strategy_id=strategy.id,
            assets=assets,
            metrics=metrics,
            result=result,
            run_dir=run_dir,
            result_path=result_path,
            artifact_paths=[*artifact_paths, str(manifest_path)],
            manifest_path=manifest_path,
        )
    except Exception as exc:
        if manifest_writer is not None:
            try:
                manifest_writer.mark_failure(exc)
                failure_manifest = manifest_writer.write()
                _emit_progress(
                    progress_callback, f"Failure manifest written to {failure_manifest}"
                )
            except Exception as manifest_exc:
                logger.error("Failed to write failure manifest for run: %s", manifest_exc)
        raise


def run_backtest_from_config(
    config_path: Path,
    strategy_override: Strategy | None = None,
    progress_callback: ProgressCallback | None = None,
) -> RunOutcome:
    """
    Load a YAML config, run the backtest it describes, and write artifacts.

    Args:
        config_path: Path to YAML config file.
        strategy_override: Strategy to run instead of the configured one.
        progress_callback: Optional callback for status messages.

    Returns:
        Completed run outcome.
    """
    app_config = load_config(config_path)
    return run_backtest_with_config(
        app_config,
        strategy_override=strategy_override,
        config_path=config_path,
        progress_callback=progress_callback,
    )
