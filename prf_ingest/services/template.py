from __future__ import annotations

from pathlib import Path

import pandas as pd

"""Import template.

The downloadable workbook users fill in: a title row, the header on row 2
(where the request sheet header is looked for first), one sample row, and a
second sheet with per-column instructions plus a budget sheet header.
"""

__all__ = [
    "TEMPLATE_TITLE",
    "TEMPLATE_HEADERS",
    "SAMPLE_ROW",
    "INSTRUCTIONS",
    "BUDGET_HEADERS",
    "write_template",
]

TEMPLATE_TITLE = "Purchase Request Form (PRF) import"

TEMPLATE_HEADERS = [
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

SAMPLE_ROW = [
    1,
    2024,
    "2024-01-05",
    "A.Doe",
    "PRF-100",
    "Laptop for new engineer",
    "Laptop",
    "COA-6100",
    1500,
    "Onboarding",
    "IT",
    "LAPTOP-X",
    1,
    1500,
    1500,
]

INSTRUCTIONS = {
    "No": "Running number (optional)",
    "Budget": "Budget year, 2020-2030 (optional)",
    "Date Submit": "Submission date (date cell or YYYY-MM-DD)",
    "Submit By": "Name of the requester (required)",
    "PRF No": "Request number; leave blank on follow-up item rows of the same request",
    "Sum Description Requested": "Short summary of the request",
    "Description": "Description of the request (required)",
    "Purchase Cost Code": "Chart-of-accounts code; unknown codes can be auto-created",
    "Amount": "Requested amount; derived from item totals when blank",
    "Required for": "Purpose / project",
    "Department": "Requesting department",
    "Item Name": "Item name (required for item rows)",
    "Quantity": "Quantity, greater than 0",
    "Unit Price": "Unit price, 0 or greater",
    "Total Price": "Line total; checked against quantity x unit price",
}

BUDGET_HEADERS = ["COA", "Category", "Fiscal Year", "Initial Budget", "Remaining Budget"]


def write_template(path: Path) -> Path:
    """Write the template workbook (.xlsx) and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    prf = pd.DataFrame([[TEMPLATE_TITLE] + [None] * (len(TEMPLATE_HEADERS) - 1), TEMPLATE_HEADERS, SAMPLE_ROW])
    instructions = pd.DataFrame(
        [["Column", "Instruction"]] + [[col, INSTRUCTIONS[col]] for col in TEMPLATE_HEADERS]
    )
    budget = pd.DataFrame([BUDGET_HEADERS, ["COA-6100", "IT Equipment", 2024, 50000, 50000]])
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        prf.to_excel(writer, sheet_name="PRF", header=False, index=False)
        budget.to_excel(writer, sheet_name="Budget", header=False, index=False)
        instructions.to_excel(writer, sheet_name="Instructions", header=False, index=False)
    return path
