from __future__ import annotations

from typing import Any, Iterable, Mapping

import pandas as pd

DIGITAL_MOTIONS = "Digital Motions"
UNKNOWN_REGION = "Unknown"
SHIPPED = "Shipped"

METRIC_COLUMNS = ["plan", "forecast", "actuals", "var_plan", "var_actual"]


def region_metrics(
    records: Iterable[Mapping[str, Any]],
    budgets: Mapping[str, Mapping[str, Any]],
) -> pd.DataFrame:
    """
    Summarise spend per region for budget reporting.

    - Records whose digitalMotions is the boolean True are grouped under "Digital Motions"; the string
      "true" accepted by the filter flag does not count here. Records without a region go under "Unknown"
    - Shipped records add actualCost to actuals, every other record adds forecastedCost to forecast
    - forecast includes actuals
    - plan is budgets[region]["assignedBudget"] (0 when the region has no budget)
    - var_plan = plan - forecast, var_actual = plan - actuals

    Returns a DataFrame indexed by region (sorted) with METRIC_COLUMNS.
    """
    rows = list(records)
    if not rows:
        return pd.DataFrame(columns=METRIC_COLUMNS, dtype=float).rename_axis("region")

    regions = [
        DIGITAL_MOTIONS if r.get("digitalMotions") is True else str(r.get("region") or UNKNOWN_REGION)
        for r in rows
    ]
    shipped = pd.Series([r.get("status") == SHIPPED for r in rows])
    actual_cost = pd.to_numeric(pd.Series([r.get("actualCost") for r in rows], dtype=object), errors="coerce").fillna(0.0)
    forecast_cost = pd.to_numeric(pd.Series([r.get("forecastedCost") for r in rows], dtype=object), errors="coerce").fillna(0.0)

    frame = pd.DataFrame(
        {
            "region": regions,
            "actuals": actual_cost.where(shipped, 0.0),
            "forecast": forecast_cost.where(~shipped, 0.0),
        }
    )

    out = frame.groupby("region", sort=True)[["actuals", "forecast"]].sum()
    out["plan"] = [float((budgets.get(region) or {}).get("assignedBudget", 0) or 0) for region in out.index]
    out["forecast"] = out["forecast"] + out["actuals"]
    out["var_plan"] = out["plan"] - out["forecast"]
    out["var_actual"] = out["plan"] - out["actuals"]
    return out[METRIC_COLUMNS]
