from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

MQL_RATE = 0.10
SQL_RATE = 0.06
SQL_TO_OPP_RATE = 0.80
REVENUE_PER_OPP = 50_000


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass(frozen=True)
class Kpis:
    mql: int
    sql: int
    opps: int
    pipeline: int


def kpis(leads: float = 0) -> Kpis:
    """
    Funnel numbers for a lead count: 10% MQL, 6% SQL, 80% of SQLs become opportunities,
    $50,000 pipeline per opportunity. Counts are rounded half-up at each step.
    """
    leads = float(leads or 0)
    mql = _round_half_up(leads * MQL_RATE)
    sql = _round_half_up(leads * SQL_RATE)
    opps = _round_half_up(sql * SQL_TO_OPP_RATE)
    return Kpis(mql=mql, sql=sql, opps=opps, pipeline=opps * REVENUE_PER_OPP)


def calculate_pipeline(leads: float = 0) -> int:
    """Pipeline straight from leads (leads * 6% * 80%, rounded, * $50K) without the SQL rounding step."""
    return _round_half_up(float(leads or 0) * SQL_RATE * SQL_TO_OPP_RATE) * REVENUE_PER_OPP


def kpis_frame(records: list[dict], leads_field: str = "expectedLeads") -> pd.DataFrame:
    """
    Vectorised kpis() over a list of records, for report views.

    Returns one row per record, indexed by id, with leads/mql/sql/opps/pipeline columns.
    Missing or non-numeric lead counts count as 0.
    """
    ids = [r.get("id") for r in records]
    leads = pd.to_numeric(
        pd.Series([r.get(leads_field) for r in records], index=ids, dtype=object),
        errors="coerce",
    ).fillna(0.0)

    values = leads.to_numpy(dtype=float)
    sql = np.floor(values * SQL_RATE + 0.5)
    opps = np.floor(sql * SQL_TO_OPP_RATE + 0.5)

    frame = pd.DataFrame(
        {
            "leads": values,
            "mql": np.floor(values * MQL_RATE + 0.5).astype(int),
            "sql": sql.astype(int),
            "opps": opps.astype(int),
            "pipeline": (opps * REVENUE_PER_OPP).astype(int),
        },
        index=pd.Index(ids, name="id"),
    )
    return frame
