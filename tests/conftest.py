"""Pytest configuration and shared fixtures."""

import pandas as pd
import pytest


HPI_SERIES = {
    # area code, region name, price for month i
    "E12000007": ("London", lambda i: 200_000 * 1.01 ** i),
    "E12000001": ("North East", lambda i: 80_000 * 1.005 ** i),
    "W92000004": ("Wales", lambda i: 100_000 + 500 * i),
    # not a region; must be filtered out
    "E92000001": ("England", lambda i: 150_000 + 100 * i),
}


def make_hpi_frame(months: int = 60, start: str = "2000-01-01") -> pd.DataFrame:
    dates = pd.date_range(start, periods=months, freq="MS")
    rows = []
    for code, (name, price) in HPI_SERIES.items():
        for i, date in enumerate(dates):
            rows.append({
                "Date": date.strftime("%d/%m/%Y"),
                "RegionName": name,
                "AreaCode": code,
                "AveragePrice": round(price(i), 2),
                "Index": 100.0,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def hpi_frame() -> pd.DataFrame:
    return make_hpi_frame()


@pytest.fixture
def hpi_csv(tmp_path, hpi_frame):
    path = tmp_path / "UK-HPI-full-file.csv"
    hpi_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def ldd_frame() -> pd.DataFrame:
    """Raw LDD-style sheet with release-style headers."""
    rows = [
        # borough, fy, tenure, bedrooms, units, development type
        ("Camden", "2020/21", "Market", 0, 10, "Conventional"),
        ("Camden", "2020/21", "Market", 2, 20, "Conventional"),
        ("Camden", "2020/21", "Social Rent", 3, 5, "Conventional"),
        ("Camden", "2021/22", "Market", 1, 30, "Conventional"),
        ("Camden", "2021/22", "Social Rent", 5, 4, "Conventional"),
        ("Hackney", "2020/21", "Intermediate", 2, 12, "Conventional"),
        ("Hackney", "2021/22", "Market", 4, 6, "Conventional"),
        ("Hackney", "2021/22", "Intermediate", 2, 1200, "Conventional"),
        ("Hackney", "2021/22", "Market", 6, 2, "Conventional"),
        ("Hackney", "2021/22", "Market", 1, 500, "Non-conventional"),
        ("Barnet", "2019/20", "Market", 3, 8, "Conventional"),
        ("Barnet", "2021/22", "Social Rent", None, 3, "Conventional"),
        (None, "2021/22", "Market", 2, 99, "Conventional"),
    ]
    return pd.DataFrame(
        rows,
        columns=["Borough Name", "Financial Year", "Tenure", "No. of Bedrooms", "Net Units", "Development Type"],
    )


@pytest.fixture
def ldd_xlsx(tmp_path, ldd_frame):
    path = tmp_path / "ldd-completions.xlsx"
    ldd_frame.to_excel(path, index=False)
    return path
