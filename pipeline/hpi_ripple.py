"""
Regional "ripple effect" data from the UK House Price Index full file.

- Keeps the twelve UK ITL1 regions (nine English regions + Wales, Scotland, NI)
- Derives the price 3 years earlier, annualised % change over those 3 years,
  and a dense price rank per month (1 = most expensive region)
- Writes the long table (`hpi_ripple_long.parquet`), a wide pivot of the %
  change (`hpi_ripple_wide.csv`), an animated chart (HTML + GIF) and
  `hpi_ripple_metadata.json`

Run from repo root:
    python -m pipeline.hpi_ripple --start 2000-01-01

"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from pipeline.sources import HPI_SOURCE, resolve_source_path


# ITL1 area codes -> short labels; order is the default column order
REGIONS = {
    "E12000007": "London",
    "E12000008": "South East",
    "E12000006": "East of England",
    "E12000009": "South West",
    "E12000004": "East Midlands",
    "E12000005": "West Midlands",
    "E12000002": "North West",
    "E12000003": "Yorkshire and The Humber",
    "E12000001": "North East",
    "W92000004": "Wales",
    "S92000003": "Scotland",
    "N92000002": "Northern Ireland",
}

USECOLS = ["Date", "RegionName", "AreaCode", "AveragePrice"]

LAG_MONTHS = 36
OUTPUT_DIR = Path("output")


def parse_hpi_dates(s: pd.Series) -> pd.Series:
    # full file uses dd/mm/yyyy; some extracts use ISO dates
    s = s.astype("string").str.strip()
    parsed = pd.to_datetime(s, format="%d/%m/%Y", errors="coerce")
    missing = parsed.isna() & s.notna()
    if missing.any():
        parsed[missing] = pd.to_datetime(s[missing], format="%Y-%m-%d", errors="coerce")
    return parsed.dt.to_period("M").dt.to_timestamp()


def load_hpi(path, start=None) -> pd.DataFrame:
    """Read the HPI CSV and keep one row per (region, month)."""
    header = pd.read_csv(path, nrows=0).columns
    missing = [c for c in USECOLS if c not in header]
    if missing:
        raise ValueError(f"HPI file is missing expected columns: {missing}")

    df = pd.read_csv(
        path,
        usecols=USECOLS,
        dtype={"Date": "string", "RegionName": "string", "AreaCode": "string"},
    )
    print("Rows read:", len(df))

    df["date"] = parse_hpi_dates(df["Date"])
    df["price"] = pd.to_numeric(df["AveragePrice"], errors="coerce")
    df = df[df["AreaCode"].isin(list(REGIONS))]
    df = df.dropna(subset=["date", "price"])

    if start is not None:
        start = pd.to_datetime(str(start)).to_period("M").to_timestamp()
        df = df[df["date"] >= start]

    if df.empty:
        raise ValueError("No regional rows left after filtering. Check the file and --start date.")

    df = df.rename(columns={"AreaCode": "area_code"})
    df["region"] = df["area_code"].map(REGIONS)
    df = (
        df[["date", "region", "area_code", "price"]]
        .drop_duplicates(subset=["area_code", "date"], keep="last")
        .sort_values(["area_code", "date"])
        .reset_index(drop=True)
    )

    print("Regional rows kept:", len(df))
    print("Date range:", df["date"].min().date(), "->", df["date"].max().date())
    return df


def add_lagged_price(df: pd.DataFrame, lag_months: int = LAG_MONTHS) -> pd.DataFrame:
    # keyed on date rather than row position, so a gap in the series gives NaN
    lag = df[["area_code", "date", "price"]].copy()
    lag["date"] = lag["date"] + pd.DateOffset(months=lag_months)
    lag = lag.rename(columns={"price": "lagged_price"})

    out = df.drop(columns=["lagged_price"], errors="ignore")
    return out.merge(lag, on=["area_code", "date"], how="left")


def add_pct_change(df: pd.DataFrame, years: float = LAG_MONTHS / 12) -> pd.DataFrame:
    out = df.copy()
    out["pct_change"] = np.where(
        out["lagged_price"] > 0,
        (out["price"] / out["lagged_price"] - 1.0) / years * 100.0,
        np.nan,
    )
    return out


def add_price_rank(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["price_rank"] = (
        out.groupby("date")["price"].rank(method="dense", ascending=False).astype("int64")
    )
    return out


def build_ripple_frame(df: pd.DataFrame, lag_months: int = LAG_MONTHS, start=None) -> pd.DataFrame:
    """
    Long table, one row per (date, region) that has a lagged price:
      date, region, area_code, price, lagged_price, pct_change, price_rank

    `start` trims the output only; earlier months still feed the lag.
    """
    d = add_lagged_price(df, lag_months=lag_months)
    d = add_pct_change(d, years=lag_months / 12)
    d = d.dropna(subset=["lagged_price", "pct_change"])
    if d.empty:
        raise ValueError(f"Series too short for a {lag_months}-month lag.")
    if start is not None:
        start = pd.to_datetime(str(start)).to_period("M").to_timestamp()
        d = d[d["date"] >= start]
        if d.empty:
            raise ValueError(f"No months with a {lag_months}-month lag on or after {start.date()}.")
    d = add_price_rank(d)

    cols = ["date", "region", "area_code", "price", "lagged_price", "pct_change", "price_rank"]
    return d[cols].sort_values(["date", "price_rank", "region"]).reset_index(drop=True)


def pivot_ripple(long_df: pd.DataFrame, value: str = "pct_change") -> pd.DataFrame:
    wide = long_df.pivot(index="date", columns="region", values=value)
    order = [r for r in REGIONS.values() if r in wide.columns]
    wide = wide[order].sort_index()
    wide.columns.name = None
    return wide


def sample_frames(long_df: pd.DataFrame, every_months: int = 1) -> pd.DataFrame:
    if every_months < 1:
        raise ValueError("every_months must be >= 1")
    if long_df.empty:
        raise ValueError("Nothing to sample: ripple frame is empty.")
    dates = sorted(long_df["date"].unique())
    keep = set(dates[::every_months])
    keep.add(dates[-1])
    return long_df[long_df["date"].isin(keep)].reset_index(drop=True)


def write_metadata(path: Path, long_df: pd.DataFrame, frames_df: pd.DataFrame, lag_months: int) -> dict:
    metadata = {
        "earliest": long_df["date"].min().strftime("%Y-%m-%d"),
        "latest": long_df["date"].max().strftime("%Y-%m-%d"),
        "lag_months": lag_months,
        "regions": [r for r in REGIONS.values() if r in set(long_df["region"])],
        "rows": int(len(long_df)),
        "frames": int(frames_df["date"].nunique()),
    }
    with open(path, "w") as f:
        json.dump(metadata, f, indent=2)
    return metadata


def run(
    hpi_csv: Optional[Path] = None,
    out_dir: Path = OUTPUT_DIR,
    start=None,
    lag_months: int = LAG_MONTHS,
    frame_every: int = 3,
    gif: bool = True,
    data_dir: Optional[Path] = None,
    refresh: bool = False,
) -> dict:
    # rendering pulls in plotly/matplotlib; keep the data steps importable without them
    from pipeline.ripple_chart import plot_ripple_animation, write_ripple_gif, write_ripple_html

    path = hpi_csv or resolve_source_path(HPI_SOURCE, data_dir=data_dir, refresh=refresh)
    print("Using HPI file:", path)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    # full history: the lag needs the months before --start
    df = load_hpi(path)
    long_df = build_ripple_frame(df, lag_months=lag_months, start=start)
    wide = pivot_ripple(long_df)

    long_df.to_parquet(out_dir / "hpi_ripple_long.parquet", index=False)
    wide.to_csv(out_dir / "hpi_ripple_wide.csv", index_label="date", float_format="%.3f")
    print("Wrote:", out_dir / "hpi_ripple_wide.csv", "rows:", len(wide))

    frames_df = sample_frames(long_df, every_months=frame_every)
    years = lag_months // 12
    title = f"Annualised {years}-year house price change by region"

    fig = plot_ripple_animation(frames_df, title=title)
    write_ripple_html(fig, out_dir / "hpi_ripple.html")
    print("Wrote:", out_dir / "hpi_ripple.html")

    if gif:
        write_ripple_gif(frames_df, out_dir / "hpi_ripple.gif", title=title)
        print("Wrote:", out_dir / "hpi_ripple.gif")

    metadata = write_metadata(out_dir / "hpi_ripple_metadata.json", long_df, frames_df, lag_months)
    print(json.dumps(metadata, indent=2))
    return metadata


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build the regional house price ripple chart from the UK HPI.")
    parser.add_argument("--hpi-csv", type=Path, default=None, help="Local HPI CSV (skips download)")
    parser.add_argument("--data-dir", type=Path, default=None, help="Download cache folder (default: ./data)")
    parser.add_argument("--out-dir", type=Path, default=OUTPUT_DIR, help="Output folder")
    parser.add_argument("--start", default=None, help="First month to keep, YYYY-MM-DD")
    parser.add_argument("--lag-months", type=int, default=LAG_MONTHS, help="Lag for the %% change (default: 36)")
    parser.add_argument("--frame-every", type=int, default=3, help="Animate every Nth month (default: 3)")
    parser.add_argument("--no-gif", action="store_true", help="Skip the GIF, write HTML only")
    parser.add_argument("--refresh", action="store_true", help="Re-download even if cached")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    # Notebook kernels inject args like "-f <kernel.json>"; ignore them.
    args, _unknown = parser.parse_known_args(argv)

    if args.lag_months < 12 or args.lag_months % 12:
        parser.error("--lag-months must be a positive multiple of 12")

    run(
        hpi_csv=args.hpi_csv,
        out_dir=args.out_dir,
        start=args.start,
        lag_months=args.lag_months,
        frame_every=args.frame_every,
        gif=not args.no_gif,
        data_dir=args.data_dir,
        refresh=args.refresh,
    )
    return 0


if __name__ == "__main__":
    exit_code = main(sys.argv[1:])
    if "ipykernel" not in sys.modules:
        raise SystemExit(exit_code)
