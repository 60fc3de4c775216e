"""Equity curve plot artifacts."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

from stratbacktest.core.utils.errors import ArtifactError


class _PointLike(Protocol):
    date: Any
    equity: float


class _TradeLike(Protocol):
    entry_date: Any
    exit_date: Any


def get_matplotlib_pyplot() -> Any:
    """
    Import ``matplotlib.pyplot`` headless with a writable config directory.

    Returns:
        Imported pyplot module.
    """
    if "MPLCONFIGDIR" not in os.environ:
        mpl_config_dir = Path("/tmp/stratbacktest-mplconfig")
        mpl_config_dir.mkdir(parents=True, exist_ok=True)
        os.environ["MPLCONFIGDIR"] = str(mpl_config_dir)

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    return plt


def save_equity_curve_plot(
    equity_curve: Sequence[_PointLike],
    output_dir: Path,
    filename: str = "equity_curve.png",
    trades: Sequence[_TradeLike] = (),
    title: str = "Equity Curve",
) -> Path:
    """
    Save an equity curve plot with trade entry/exit markers.

    Args:
        equity_curve: Points with ``date`` and ``equity`` attributes.
        output_dir: Artifact directory.
        filename: Output image filename.
        trades: Trades with ``entry_date`` and ``exit_date`` attributes.
        title: Chart title.

    Returns:
        Saved plot path.

    Raises:
        ArtifactError: If rendering or writing fails.
    """
    plot_path = output_dir / filename
    if not equity_curve:
        raise ArtifactError(f"Cannot plot an empty equity curve to {plot_path}.")
    plt = get_matplotlib_pyplot()
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        dates = [point.date for point in equity_curve]
        values = [point.equity for point in equity_curve]
        equity_by_date = dict(zip(dates, values, strict=True))

        figure, axis = plt.subplots(figsize=(10, 4))
        axis.plot(dates, values, linewidth=1.2, color="#0f3d3e")
        entries = [trade.entry_date for trade in trades if trade.entry_date in equity_by_date]
        exits = [trade.exit_date for trade in trades if trade.exit_date in equity_by_date]
        if entries:
            axis.scatter(entries, [equity_by_date[day] for day in entries], marker="^", color="#2b9348", zorder=3)
        if exits:
            axis.scatter(exits, [equity_by_date[day] for day in exits], marker="v", color="#c1121f", zorder=3)
        axis.set_title(title)
        axis.set_xlabel("Date")
        axis.set_ylabel("Equity")
        axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)
        figure.tight_layout()
        figure.savefig(plot_path, dpi=150)
        plt.close(figure)
        return plot_path
    except Exception as exc:
        raise ArtifactError(f"Failed to save equity curve plot to {plot_path}: {exc}") from exc
