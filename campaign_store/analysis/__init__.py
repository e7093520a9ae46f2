"""
Reporting helpers that sit beside the store: KPI arithmetic and regional budget metrics.
They read record dicts and never mutate the store.
"""

from .kpis import Kpis, calculate_pipeline, kpis, kpis_frame
from .region_metrics import region_metrics

__all__ = ["Kpis", "calculate_pipeline", "kpis", "kpis_frame", "region_metrics"]
