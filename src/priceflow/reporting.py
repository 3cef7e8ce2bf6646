import pandas as pd

from .models import PriceBreakdown

COLUMNS = ["LABEL", "KIND", "VALUE", "FORMULA"]


def breakdown_frame(breakdown: PriceBreakdown) -> pd.DataFrame:
    rows = [
        {
            "LABEL": line.label,
            "KIND": line.kind,
            "VALUE": line.value,
            "FORMULA": line.formula or "",
        }
        for line in breakdown.lines
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def make_summary_text(breakdown: PriceBreakdown) -> str:
    frame = breakdown_frame(breakdown)
    items = frame[frame["KIND"] != "total"][["LABEL", "KIND", "VALUE"]]
    express = "express" if breakdown.is_express else "normal"
    return (
        f"Total for {breakdown.quantity} pcs ({express} production): {breakdown.total:,.2f}.\n"
        f"Unit price after adjustments: {breakdown.unit_price:,.2f}"
        f" (quantity discount {breakdown.discount_percent:g}%).\n"
        f"Breakdown per unit:\n{items.to_string(index=False)}\n"
    )
