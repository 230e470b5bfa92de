from __future__ import annotations

import argparse
import html
import json
import re
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from pipeline.sources import LDD_SOURCE, resolve_source_path


OUTPUT_DIR = Path("output")
TOPCODE_THRESHOLD = 4
LONDON_TOTAL = "London"

# logical column -> header candidates (after normalize_colname)
COLUMN_CANDIDATES = {
    "borough": ["borough", "borough_name", "lpa_name", "local_planning_authority", "lpa"],
    "financial_year": ["financial_year", "completion_financial_year", "completion_fy", "fy", "year"],
    "tenure": ["tenure", "tenure_type", "unit_tenure", "proposed_tenure"],
    "bedrooms": ["bedrooms", "number_of_bedrooms", "no_of_bedrooms", "bedroom_count", "beds"],
    "units": ["units", "net_units", "number_of_units", "no_of_units", "unit_count", "proposed_units"],
}
OPTIONAL_CANDIDATES = {
    "development_type": ["development_type", "dev_type", "unit_type", "conventional_type"],
}


def normalize_colname(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(name).strip().lower()).strip("_")


def pick_column(columns: list[str], candidates: list[str]) -> str:
    for candidate in candidates:
        if candidate in columns:
            return candidate
    raise ValueError(f"Missing expected column. Tried: {candidates}")


def fy_sort_key(value) -> tuple:
    # "2019/20", "2019-20", "2019" -> 2019
    match = re.match(r"\s*(\d{4})", str(value))
    return (int(match.group(1)) if match else 10_000, str(value))


def load_completions(path, sheet_name=0) -> pd.DataFrame:
    df = pd.read_excel(path, sheet_name=sheet_name, dtype=object)
    print("Rows read:", len(df))
    df.columns = [normalize_colname(c) for c in df.columns]

    cols = list(df.columns)
    rename = {pick_column(cols, cands): logical for logical, cands in COLUMN_CANDIDATES.items()}
    for logical, cands in OPTIONAL_CANDIDATES.items():
        try:
            rename[pick_column(cols, cands)] = logical
        except ValueError:
            pass

    work = df[list(rename)].rename(columns=rename)

    work["borough"] = work["borough"].astype("string").str.strip()
    work["financial_year"] = work["financial_year"].astype("string").str.strip()
    work["tenure"] = work["tenure"].astype("string").str.strip().fillna("Unknown")
    work["bedrooms"] = pd.to_numeric(work["bedrooms"], errors="coerce")
    work["units"] = pd.to_numeric(work["units"], errors="coerce")

    work = work.dropna(subset=["borough", "financial_year", "units"])
    work = work[(work["borough"].str.len() > 0) & (work["financial_year"].str.len() > 0)]

    if "development_type" in work.columns:
        dev = work["development_type"].astype("string").str.strip().str.lower()
        work = work[dev.eq("conventional").fillna(False)].drop(columns=["development_type"])
        print("Conventional rows kept:", len(work))

    if work.empty:
        raise ValueError("No completions rows left after cleaning.")

    print("Rows kept:", len(work))
    print("Financial years:", ", ".join(sorted(work["financial_year"].unique(), key=fy_sort_key)))
    return work.reset_index(drop=True)


def topcode_bedrooms(series: pd.Series, threshold: int = TOPCODE_THRESHOLD) -> pd.Series:
    """Bucket bedroom counts as "1", "2", ..., "{threshold}+".

    Studios and bedsits (0 bedrooms) fall in "1"; missing counts stay missing.
    """
    if threshold < 1:
        raise ValueError("threshold must be >= 1")
    labels = [str(i) for i in range(1, threshold)] + [f"{threshold}+"]
    bins = [-np.inf] + [i + 0.5 for i in range(1, threshold)] + [np.inf]
    return pd.cut(pd.to_numeric(series, errors="coerce"), bins=bins, labels=labels, ordered=True)


def completions_by_borough(df: pd.DataFrame, years: Optional[list[str]] = None) -> pd.DataFrame:
    d = df if years is None else df[df["financial_year"].isin(years)]
    if d.empty:
        raise ValueError(f"No completions for financial years: {years}")

    t = (
        d.groupby(["borough", "financial_year"])["units"].sum()
         .unstack("financial_year", fill_value=0)
    )
    t = t[sorted(t.columns, key=fy_sort_key)].sort_index()
    t.loc[LONDON_TOTAL] = t.sum()
    t = t.round(0).astype("int64")
    t.index.name = "borough"
    t.columns.name = "financial_year"
    return t


def completions_by_tenure_bedrooms(
    df: pd.DataFrame,
    year: Optional[str] = None,
    threshold: int = TOPCODE_THRESHOLD,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Units by tenure x bedroom band, with Total row/column, plus the matching
    table of row shares in percent.
    """
    d = df if year is None else df[df["financial_year"] == year]
    d = d.assign(bedroom_band=topcode_bedrooms(d["bedrooms"], threshold=threshold))
    d = d.dropna(subset=["bedroom_band"])
    if d.empty:
        raise ValueError(f"No completions with a bedroom count for financial year: {year}")

    t = (
        d.groupby(["tenure", "bedroom_band"], observed=False)["units"].sum()
         .unstack("bedroom_band", fill_value=0)
    )
    t.columns = [str(c) for c in t.columns]
    t = t.sort_index()
    t["Total"] = t.sum(axis=1)
    t.loc["Total"] = t.sum()
    t = t.round(0).astype("int64")
    t.index.name = "tenure"

    totals = t["Total"].where(t["Total"] != 0)
    share = (t.div(totals, axis=0) * 100.0).round(1)
    return t, share


def render_table_html(table: pd.DataFrame, title: str, value_format: str = "{:,.0f}") -> str:
    def fmt(v) -> str:
        return "-" if pd.isna(v) else value_format.format(v)

    body = table.to_html(
        formatters={c: fmt for c in table.columns},
        na_rep="-",
        border=0,
        classes="amr-table",
        justify="right",
    )
    return f"<h3>{html.escape(title)}</h3>\n{body}\n"


def write_html_page(path: Path, fragments: list[str], title: str) -> None:
    page = (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{html.escape(title)}</title>\n"
        "<style>.amr-table{border-collapse:collapse;font-family:sans-serif;font-size:13px}"
        ".amr-table td,.amr-table th{padding:2px 8px;border-bottom:1px solid #ddd}</style>\n"
        "</head>\n<body>\n" + "\n".join(fragments) + "</body>\n</html>\n"
    )
    path.write_text(page, encoding="utf-8")


def run(
    ldd_xlsx: Optional[Path] = None,
    out_dir: Path = OUTPUT_DIR,
    sheet_name=0,
    last_years: Optional[int] = None,
    year: Optional[str] = None,
    threshold: int = TOPCODE_THRESHOLD,
    data_dir: Optional[Path] = None,
    refresh: bool = False,
) -> dict:
    path = ldd_xlsx or resolve_source_path(LDD_SOURCE, data_dir=data_dir, refresh=refresh)
    print("Using LDD file:", path)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    df = load_completions(path, sheet_name=sheet_name)
    all_years = sorted(df["financial_year"].unique(), key=fy_sort_key)

    years = all_years[-last_years:] if last_years else None
    by_borough = completions_by_borough(df, years=years)

    # single-year table, as published; latest year unless asked otherwise
    year = year or all_years[-1]
    by_tenure, shares = completions_by_tenure_bedrooms(df, year=year, threshold=threshold)

    by_borough.to_csv(out_dir / "completions_by_borough.csv")
    by_tenure.to_csv(out_dir / "completions_by_tenure_bedrooms.csv")
    shares.to_csv(out_dir / "completions_by_tenure_bedrooms_share.csv")

    borough_title = "Net conventional completions by borough and financial year"
    write_html_page(
        out_dir / "completions_by_borough.html",
        [render_table_html(by_borough, borough_title)],
        borough_title,
    )
    tenure_title = f"Conventional completions by tenure and number of bedrooms, {year}"
    write_html_page(
        out_dir / "completions_by_tenure_bedrooms.html",
        [
            render_table_html(by_tenure, tenure_title),
            render_table_html(shares, f"{tenure_title} (% of tenure)", value_format="{:.1f}"),
        ],
        tenure_title,
    )
    print("Wrote tables to:", out_dir)

    metadata = {
        "input": str(path),
        "financial_years": [str(y) for y in (years or all_years)],
        "tenure_table_year": str(year),
        "boroughs": int(len(by_borough) - 1),
        "tenures": int(len(by_tenure) - 1),
        "topcode_threshold": threshold,
        "files": {
            "by_borough": "completions_by_borough.html",
            "by_tenure_bedrooms": "completions_by_tenure_bedrooms.html",
        },
    }
    (out_dir / "ldd_tables_metadata.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")
    return metadata


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build AMR-style completions tables from the LDD spreadsheet.")
    parser.add_argument("--ldd-xlsx", type=Path, default=None, help="Local LDD spreadsheet (skips download)")
    parser.add_argument("--sheet", default=0, help="Sheet name or index (default: first sheet)")
    parser.add_argument("--data-dir", type=Path, default=None, help="Download cache folder (default: ./data)")
    parser.add_argument("--out-dir", type=Path, default=OUTPUT_DIR, help="Output folder")
    parser.add_argument("--last-years", type=int, default=None, help="Borough table: keep only the last N financial years")
    parser.add_argument("--year", default=None, help="Tenure table: financial year, e.g. 2021/22 (default: latest)")
    parser.add_argument("--topcode", type=int, default=TOPCODE_THRESHOLD, help="Bedroom topcode threshold (default: 4)")
    parser.add_argument("--refresh", action="store_true", help="Re-download even if cached")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    # Notebook kernels inject args like "-f <kernel.json>"; ignore them.
    args, _unknown = parser.parse_known_args(argv)

    if args.last_years is not None and args.last_years < 1:
        parser.error("--last-years must be >= 1")

    sheet = int(args.sheet) if str(args.sheet).isdigit() else args.sheet
    run(
        ldd_xlsx=args.ldd_xlsx,
        out_dir=args.out_dir,
        sheet_name=sheet,
        last_years=args.last_years,
        year=args.year,
        threshold=args.topcode,
        data_dir=args.data_dir,
        refresh=args.refresh,
    )
    return 0


if __name__ == "__main__":
    exit_code = main(sys.argv[1:])
    if "ipykernel" not in sys.modules:
        raise SystemExit(exit_code)
