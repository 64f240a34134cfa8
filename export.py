"""
Tabular and key-value exports of simulation output

Flattens any record sequence (MonthlyRecord, ScaledRecord, NetworkState)
into pandas frames and metric-by-month CSV grids, and dumps an assumption
bundle as structured data or copy/paste text.
"""

from dataclasses import fields
from typing import Any, Dict, Optional, Sequence

import pandas as pd

from sim import Assumptions, MonthlyRecord, RevenueSplit

CSV_FLOAT_FORMAT = '%.6f'


def records_to_frame(records: Sequence[Any]) -> pd.DataFrame:
    """One row per month, one column per metric"""
    return pd.DataFrame([r.to_dict() for r in records])


def metric_grid(records: Sequence[Any]) -> pd.DataFrame:
    """
    Metric-by-month grid: one row per metric, one column per month

    Args:
        records: Any sequence of records exposing month and to_dict()

    Returns:
        DataFrame indexed by metric name with columns "Month 1".."Month N"
    """
    return _transpose(records_to_frame(records))


def network_metric_grid(states: Sequence[Any], entity_metrics: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Metric-by-month grid for a network run with every retailer's series

    Network aggregates come first, then one block of rows per retailer in
    roster order, labelled "<retailer> <metric>". All MonthlyRecord metrics
    are included unless `entity_metrics` narrows them.
    """
    metrics = list(entity_metrics) if entity_metrics is not None else MonthlyRecord.metric_names()
    rows = []
    for state in states:
        prefixes = tuple(f"{entity} " for entity in state.entities)
        row = {name: value for name, value in state.to_dict().items() if not name.startswith(prefixes)}
        for entity, record in state.entities.items():
            for metric in metrics:
                row[f"{entity} {metric}"] = getattr(record, metric)
        rows.append(row)
    return _transpose(pd.DataFrame(rows))


def _transpose(frame: pd.DataFrame) -> pd.DataFrame:
    if frame.empty:
        return pd.DataFrame()
    grid = frame.drop(columns=[c for c in ('month_index',) if c in frame.columns])
    grid = grid.set_index('month').T
    grid.columns = [f"Month {m}" for m in grid.columns]
    grid.index.name = 'Metric'
    return grid.astype(float)


def to_csv(records: Sequence[Any], float_format: str = CSV_FLOAT_FORMAT) -> str:
    """Metric-by-month grid as CSV text with plain decimals"""
    return metric_grid(records).to_csv(float_format=float_format)


def assumptions_to_dict(assumptions: Assumptions) -> Dict[str, Any]:
    """Flat dict of an assumption bundle; split tables become dotted keys"""
    flat = {}
    for f in fields(assumptions):
        value = getattr(assumptions, f.name)
        if isinstance(value, RevenueSplit):
            for recipient, fraction in value.shares.items():
                flat[f"{f.name}.{recipient}"] = fraction
        else:
            flat[f.name] = value
    flat['effective_opt_in'] = assumptions.effective_opt_in
    return flat


def assumptions_export(assumptions: Assumptions, label: Optional[str] = None) -> str:
    """Current assumptions as "key: value" lines for copy/paste"""
    lines = []
    if label:
        lines.append(f"scenario: {label}")
    for key, value in assumptions_to_dict(assumptions).items():
        lines.append(f"{key}: {value}")
    return "\n".join(lines)
