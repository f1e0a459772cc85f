"""Scalar summaries of snapshots for external tabular consumers.

One row per snapshot: area occupied, population, detected area, traps and
costs. Turning the rows into a table, file or plot is left to the caller.
"""

from typing import Any, Dict, Iterable, List

import numpy as np

from .cost.ledger import COMPONENT_GRIDS
from .engine.sink import Snapshot


def snapshot_metrics(snapshot: Snapshot, cell_area: float = 1.0,
                     population: str = 'population', detected: str = 'detected',
                     traps: str = 'traps', cost: str = 'cost') -> Dict[str, Any]:
    """Summarize one snapshot.

    Grids missing from the snapshot are skipped. Each cost component grid
    present (see COMPONENT_GRIDS) gets its own total.

    Args:
        snapshot: Snapshot to summarize
        cell_area: Area of one cell, used for area metrics

    Returns:
        Flat dict of scalar metrics
    """
    row: Dict[str, Any] = {
        'replicate': snapshot.replicate,
        'tick': snapshot.tick,
        'time': snapshot.time,
    }
    if population in snapshot:
        pop = snapshot[population]
        row['occupied_cells'] = int(np.count_nonzero(pop > 0))
        row['area'] = row['occupied_cells'] * cell_area
        row['population'] = float(pop.sum())
    if detected in snapshot:
        row['detected_area'] = int(np.count_nonzero(snapshot[detected])) * cell_area
    if traps in snapshot:
        row['traps'] = float(snapshot[traps].sum())
    if cost in snapshot:
        row['cost'] = float(snapshot[cost].sum())
    for name in COMPONENT_GRIDS:
        if name in snapshot:
            row[name] = float(snapshot[name].sum())
    return row


def run_metrics(snapshots: Iterable[Snapshot], cell_area: float = 1.0,
                **scenario: Any) -> List[Dict[str, Any]]:
    """Summarize a run, tagging every row with scenario parameters.

    Example:
        rows = run_metrics(sink.snapshots, cell_area=1.0,
                           eradication=0.5, trap_density=0.1)
    """
    rows = []
    for snapshot in snapshots:
        row = dict(scenario)
        row.update(snapshot_metrics(snapshot, cell_area))
        rows.append(row)
    return rows
