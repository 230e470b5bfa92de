"""Source resolution and bulk download for the public datasets.

Each dataset is fetched once into the data dir and reused on later runs.

Resolution order (first found wins):
1) the dataset's path env var (local file path)
2) an existing cached copy in the data dir
3) download from the dataset's URL env var, or its default URL
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import os
import time
import requests


DEFAULT_USER_AGENT = "housing-ripple-pipeline/1.0"


@dataclass(frozen=True)
class DatasetSource:
    name: str
    filename: str
    default_url: str
    path_env: str
    url_env: str
    # False: one plain GET via download_file, no Range resume
    resumable: bool = True


HPI_SOURCE = DatasetSource(
    name="UK House Price Index (full file)",
    filename="UK-HPI-full-file.csv",
    default_url=(
        "http://publicdata.landregistry.gov.uk/market-trend-data/"
        "house-price-index-data/UK-HPI-full-file-2023-06.csv"
    ),
    path_env="HPI_CSV",
    url_env="HPI_URL",
)

LDD_SOURCE = DatasetSource(
    name="London Development Database completions",
    filename="ldd-completions.xlsx",
    default_url=(
        "https://data.london.gov.uk/download/london-development-database/"
        "ldd-completions/ldd-completions.xlsx"
    ),
    path_env="LDD_XLSX",
    url_env="LDD_URL",
    resumable=False,
)


def resolve_data_dir(data_dir: Optional[Path] = None) -> Path:
    if data_dir is None:
        data_dir = Path(os.getenv("PIPELINE_DATA_DIR") or Path.cwd() / "data")
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def download_file(url: str, out_path: Path, chunk_size: int = 1024 * 1024) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    headers = {"User-Agent": DEFAULT_USER_AGENT}
    with requests.get(url, stream=True, headers=headers, timeout=(30, 600)) as r:
        r.raise_for_status()
        with open(out_path, "wb") as f:
            for chunk in r.iter_content(chunk_size=chunk_size):
                if chunk:
                    f.write(chunk)
    return out_path


def download_resume(
    url: str,
    out_path: Path,
    retries: int = 5,
    chunk_size: int = 1024 * 1024,
    sleep=time.sleep,
) -> Path:
    """Download ``url`` to ``out_path``, resuming a partial file on retry.

    Only timeouts and dropped connections are retried; HTTP errors propagate.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    s = requests.Session()
    headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept-Encoding": "identity"}
    downloaded = out_path.stat().st_size if out_path.exists() else 0

    for attempt in range(1, retries + 1):
        try:
            h = headers.copy()
            if downloaded:
                h["Range"] = f"bytes={downloaded}-"

            with s.get(url, stream=True, headers=h, timeout=(30, 300)) as r:
                if r.status_code == 416:
                    print("Already complete.")
                    return out_path
                r.raise_for_status()

                # server ignored the Range header; start over
                if downloaded and r.status_code == 200:
                    downloaded = 0

                mode = "ab" if downloaded else "wb"
                with open(out_path, mode) as f:
                    for chunk in r.iter_content(chunk_size=chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)

            print(f"Done: {out_path} ({downloaded/1e6:,.1f} MB)")
            return out_path

        except (requests.Timeout, requests.ConnectionError) as e:
            wait = min(2 ** attempt, 60)
            print(f"Attempt {attempt} failed: {e} | retrying in {wait}s (resume at {downloaded/1e6:,.1f} MB)")
            sleep(wait)

    raise RuntimeError("Failed after retries")


def resolve_source_path(
    source: DatasetSource,
    data_dir: Optional[Path] = None,
    refresh: bool = False,
) -> Path:
    env_path = os.getenv(source.path_env)
    if env_path:
        p = Path(env_path).expanduser()
        if not p.exists():
            raise FileNotFoundError(f"{source.path_env} points to a missing file: {p}")
        return p

    cached = resolve_data_dir(data_dir) / source.filename
    if cached.exists() and not refresh:
        return cached

    url = os.getenv(source.url_env) or source.default_url
    print(f"Downloading {source.name} from {url} -> {cached}")
    if refresh and cached.exists():
        cached.unlink()
    if source.resumable:
        return download_resume(url, cached)
    return download_file(url, cached)


__all__ = [
    "DatasetSource",
    "HPI_SOURCE",
    "LDD_SOURCE",
    "resolve_data_dir",
    "download_file",
    "download_resume",
    "resolve_source_path",
]
