"""Animated ripple chart: plotly for the interactive HTML, matplotlib + imageio for the GIF."""
from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import imageio.v3 as iio
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px


colorscale = "RdBu"


def region_order(long_df: pd.DataFrame) -> list[str]:
    # most expensive first, so growth moving left->right reads as the ripple
    return (
        long_df.groupby("region")["price_rank"].mean()
        .sort_values(kind="stable")
        .index.tolist()
    )


def symmetric_range(long_df: pd.DataFrame, pad: float = 1.1) -> tuple[float, float]:
    m = float(np.nanmax(np.abs(long_df["pct_change"]))) * pad
    if not np.isfinite(m) or m == 0:
        m = 1.0
    return (-m, m)


def plot_ripple_animation(long_df: pd.DataFrame, title: str = "House price ripple"):
    if long_df.empty:
        raise ValueError("Nothing to plot: ripple frame is empty.")

    d = long_df.sort_values("date").copy()
    d["month"] = d["date"].dt.strftime("%Y-%m")
    order = region_order(d)
    lo, hi = symmetric_range(d)

    fig = px.bar(
        d,
        x="region",
        y="pct_change",
        color="pct_change",
        animation_frame="month",
        animation_group="region",
        category_orders={"region": order},
        range_y=(lo, hi),
        range_color=(lo, hi),
        color_continuous_scale=colorscale,
        hover_data={"price": ":,.0f", "lagged_price": ":,.0f", "pct_change": ":.1f", "price_rank": True},
        title=title,
    )
    fig.update_layout(
        xaxis_title=None,
        yaxis_title="% per year",
        margin={"r": 10, "t": 55, "l": 10, "b": 10},
    )
    return fig


def write_ripple_html(fig, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(str(path), include_plotlyjs="cdn", auto_play=False)
    return path


def _frame_colors(values: np.ndarray, lo: float, hi: float) -> list:
    cmap = matplotlib.colormaps[colorscale]
    scaled = (np.clip(values, lo, hi) - lo) / (hi - lo)
    return [cmap(v) for v in scaled]


def write_ripple_gif(
    long_df: pd.DataFrame,
    path: Path,
    title: str = "House price ripple",
    duration_ms: int | None = None,
) -> Path:
    """Render one matplotlib frame per month and encode them as a looping GIF."""
    if long_df.empty:
        raise ValueError("Nothing to plot: ripple frame is empty.")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    order = region_order(long_df)
    lo, hi = symmetric_range(long_df)
    dates = sorted(long_df["date"].unique())

    if duration_ms is None:
        duration_ms = 300 if len(dates) < 50 else 150 if len(dates) <= 120 else 100

    frames = []
    for i, date in enumerate(dates):
        w = long_df[long_df["date"] == date].set_index("region").reindex(order)
        values = w["pct_change"].to_numpy(dtype=float)

        fig, ax = plt.subplots(figsize=(10, 6), dpi=80)
        ax.bar(range(len(order)), np.nan_to_num(values), color=_frame_colors(np.nan_to_num(values), lo, hi))
        ax.axhline(0, color="black", linewidth=0.8)
        ax.set_ylim(lo, hi)
        ax.set_xticks(range(len(order)))
        ax.set_xticklabels(order, rotation=45, ha="right")
        ax.set_ylabel("% per year")
        ax.set_title(f"{title}\n{pd.Timestamp(date).strftime('%b %Y')}")
        ax.grid(True, axis="y", linestyle="--", alpha=0.7)
        fig.tight_layout()

        fig.canvas.draw()
        frames.append(np.asarray(fig.canvas.buffer_rgba())[..., :3].copy())
        plt.close(fig)

        if i % 20 == 0:
            print(f"  Generated frame {i + 1}/{len(dates)}")

    iio.imwrite(path, np.stack(frames), extension=".gif", duration=duration_ms, loop=0)
    return path


__all__ = [
    "plot_ripple_animation",
    "write_ripple_html",
    "write_ripple_gif",
]
