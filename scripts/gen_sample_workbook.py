#!/usr/bin/env python3
"""Generate a synthetic PRF / Budget workbook.

Produces a workbook in the layout the importer expects:
- PRF sheet: title row, header on row 2, one request per contiguous run of
  rows (follow-up item rows leave the PRF No blank)
- Budget sheet: header on row 1, one allocation per cost code and fiscal year

Used for load testing and demos (``python -m prf_ingest.cli import --dry-run``).
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

PRF_HEADERS = [
    "No",
    "Budget",
    "Date Submit",
    "Submit By",
    "PRF No",
    "Sum Description Requested",
    "Description",
    "Purchase Cost Code",
    "Amount",
    "Required for",
    "Department",
    "Item Name",
    "Quantity",
    "Unit Price",
    "Total Price",
]
BUDGET_HEADERS = ["COA", "Category", "Fiscal Year", "Initial Budget", "Remaining Budget"]

DEPARTMENTS = ["IT", "Finance", "HR", "Operations", "Engineering"]
ITEMS = ["Laptop", "Monitor", "Mouse", "Keyboard", "License", "Chair", "Cable", "Printer"]
SUBMITTERS = ["A.Doe", "B.Lee", "C.Kim", "D.Ito", "E.Park"]


def generate_prf_rows(requests: int, cost_codes: list[str], seed: int = 42, invalid_ratio: float = 0.0) -> list[list[Any]]:
    """PRF sheet rows (without title/header). ``invalid_ratio`` blanks the submitter of that share of requests."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2024-01-01", "2024-12-31", periods=200)
    rows: list[list[Any]] = []
    for n in range(1, requests + 1):
        n_items = int(rng.integers(1, 5))
        qty = rng.integers(1, 20, n_items)
        price = np.round(rng.uniform(5, 2500, n_items), 2)
        totals = np.round(qty * price, 2)
        submitter = SUBMITTERS[int(rng.integers(0, len(SUBMITTERS)))]
        if invalid_ratio and rng.random() < invalid_ratio:
            submitter = None
        for k in range(n_items):
            item = ITEMS[int(rng.integers(0, len(ITEMS)))]
            if k == 0:
                rows.append(
                    [
                        n,
                        2024,
                        dates[int(rng.integers(0, len(dates)))].date().isoformat(),
                        submitter,
                        f"PRF-{n:05d}",
                        f"Request {n}",
                        f"{item} purchase",
                        cost_codes[int(rng.integers(0, len(cost_codes)))],
                        float(totals.sum()),
                        "Operations",
                        DEPARTMENTS[int(rng.integers(0, len(DEPARTMENTS)))],
                        item,
                        int(qty[k]),
                        float(price[k]),
                        float(totals[k]),
                    ]
                )
            else:
                rows.append([None] * 11 + [item, int(qty[k]), float(price[k]), float(totals[k])])
    return rows


def generate_budget_rows(cost_codes: list[str], years: list[int], seed: int = 42) -> list[list[Any]]:
    rng = np.random.default_rng(seed + 1)
    rows: list[list[Any]] = []
    for code in cost_codes:
        for year in years:
            allocated = float(np.round(rng.uniform(10_000, 500_000), 2))
            rows.append([code, "General", year, allocated, allocated])
    return rows


def create_workbook(
    output_path: Path,
    requests: int,
    cost_codes: int = 10,
    years: list[int] | None = None,
    seed: int = 42,
    invalid_ratio: float = 0.0,
) -> Path:
    """Write the workbook and return its path."""
    codes = [f"COA-{6000 + i}" for i in range(cost_codes)]
    years = years or [2024]
    output_path.parent.mkdir(parents=True, exist_ok=True)

    prf = pd.DataFrame(
        [["Purchase Request Form"] + [None] * (len(PRF_HEADERS) - 1), PRF_HEADERS]
        + generate_prf_rows(requests, codes, seed, invalid_ratio)
    )
    budget = pd.DataFrame([BUDGET_HEADERS] + generate_budget_rows(codes, years, seed))
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        prf.to_excel(writer, sheet_name="PRF", header=False, index=False)
        budget.to_excel(writer, sheet_name="Budget", header=False, index=False)
    return output_path


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a synthetic PRF / Budget workbook")
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--requests", type=int, default=1_000, help="Number of requests (default: 1,000)")
    parser.add_argument("--cost-codes", type=int, default=10, help="Number of cost codes (default: 10)")
    parser.add_argument("--years", type=int, nargs="+", default=[2024], help="Fiscal years for the budget sheet")
    parser.add_argument("--invalid-ratio", type=float, default=0.0, help="Share of requests made invalid")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.requests <= 0:
        print("Error: --requests must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.invalid_ratio <= 1:
        print("Error: --invalid-ratio must be between 0 and 1", file=sys.stderr)
        return 1

    path = create_workbook(args.output, args.requests, args.cost_codes, args.years, args.seed, args.invalid_ratio)
    print(f"Created workbook: {path}")
    print(f"  Requests: {args.requests:,}")
    print(f"  Cost codes: {args.cost_codes} x years {args.years}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
