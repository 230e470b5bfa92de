"""Tests for the animated ripple chart."""

import imageio.v3 as iio
import pandas as pd
import pytest

from pipeline.hpi_ripple import build_ripple_frame, load_hpi, sample_frames
from pipeline.ripple_chart import (
    plot_ripple_animation,
    region_order,
    symmetric_range,
    write_ripple_gif,
    write_ripple_html,
)


@pytest.fixture
def ripple_df(hpi_csv) -> pd.DataFrame:
    return sample_frames(build_ripple_frame(load_hpi(hpi_csv)), every_months=6)


def test_region_order_most_expensive_first(ripple_df) -> None:
    assert region_order(ripple_df) == ["London", "Wales", "North East"]


def test_symmetric_range() -> None:
    lo, hi = symmetric_range(pd.DataFrame({"pct_change": [-2.0, 5.0]}), pad=1.0)
    assert (lo, hi) == (-5.0, 5.0)


def test_one_animation_frame_per_month(ripple_df) -> None:
    fig = plot_ripple_animation(ripple_df, title="Ripple")

    assert len(fig.frames) == ripple_df["date"].nunique()
    assert fig.frames[0].name == ripple_df["date"].min().strftime("%Y-%m")
    lo, hi = fig.layout.yaxis.range
    assert lo == -hi


def test_write_html(tmp_path, ripple_df) -> None:
    path = write_ripple_html(plot_ripple_animation(ripple_df), tmp_path / "charts" / "ripple.html")
    text = path.read_text(encoding="utf-8")
    assert "plotly" in text


def test_write_gif_one_frame_per_month(tmp_path, ripple_df) -> None:
    path = write_ripple_gif(ripple_df, tmp_path / "ripple.gif", title="Ripple")

    frames = iio.imread(path, index=None)
    assert frames.shape[0] == ripple_df["date"].nunique()


def test_empty_frame_raises(tmp_path, ripple_df) -> None:
    empty = ripple_df.iloc[0:0]
    with pytest.raises(ValueError, match="Nothing to plot"):
        plot_ripple_animation(empty)
    with pytest.raises(ValueError, match="Nothing to plot"):
        write_ripple_gif(empty, tmp_path / "empty.gif")
