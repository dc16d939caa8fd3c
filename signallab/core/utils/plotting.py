"""Plotting utilities for backtest artifacts."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pandas as pd

from signallab.core.utils.errors import ArtifactError


def get_matplotlib_pyplot() -> Any:
    """
    Import and return ``matplotlib.pyplot`` using a headless backend.

    A writable ``MPLCONFIGDIR`` is provisioned when the environment lacks one.

    Returns:
        Imported pyplot module.
    """
    if "MPLCONFIGDIR" not in os.environ:
        mpl_config_dir = Path("/tmp/signallab-mplconfig")
        mpl_config_dir.mkdir(parents=True, exist_ok=True)
        os.environ["MPLCONFIGDIR"] = str(mpl_config_dir)

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    return plt


def save_portfolio_value_plot(
    snapshots: pd.DataFrame,
    output_dir: Path,
    filename: str = "portfolio_value.png",
    title: str = "Portfolio Value",
) -> Path:
    """
    Save a two-panel portfolio value / drawdown chart.

    Args:
        snapshots: Frame indexed by date with ``portfolio_value`` and
            ``drawdown_pct`` columns.
        output_dir: Artifact directory.
        filename: Output image filename.
        title: Chart title.

    Returns:
        Saved plot path.
    """
    missing = {"portfolio_value", "drawdown_pct"} - set(snapshots.columns)
    if missing:
        raise ArtifactError(f"Snapshot frame is missing columns for plotting: {sorted(missing)}")

    plt = get_matplotlib_pyplot()
    plot_path = output_dir / filename
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        figure, (value_axis, drawdown_axis) = plt.subplots(
            2,
            1,
            figsize=(10, 6),
            sharex=True,
            gridspec_kw={"height_ratios": [3, 1]},
        )
        value_axis.plot(
            snapshots.index,
            snapshots["portfolio_value"].values,
            linewidth=1.2,
            color="#0f3d3e",
        )
        value_axis.set_title(title)
        value_axis.set_ylabel("Value")
        value_axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)

        drawdown_axis.fill_between(
            snapshots.index,
            -snapshots["drawdown_pct"].values,
            0.0,
            color="#a63d40",
            alpha=0.4,
        )
        drawdown_axis.set_ylabel("Drawdown %")
        drawdown_axis.set_xlabel("Date")
        drawdown_axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)

        figure.tight_layout()
        figure.savefig(plot_path, dpi=150)
        plt.close(figure)
        return plot_path
    except Exception as exc:
        raise ArtifactError(f"Failed to save portfolio plot to {plot_path}: {exc}") from exc
