from __future__ import annotations

import math
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd

from .models import Block
from .sim import RunResult


# ---------------------------- helpers ---------------------------------


def _quantile(values: Sequence[float], q: float) -> float:
    if len(values) == 0:
        return float("nan")
    return float(np.quantile(np.asarray(values, dtype=float), q))


def _finite_or_nan(x: Any) -> float:
    x = float(x)
    return x if math.isfinite(x) else float("nan")


# ---------------------------- run summary ----------------------------


def summarize_run(scenario: str, policy: str, result: RunResult) -> pd.DataFrame:
    """One row of comparable totals for a finished run.

    Energy is in the radio config's units; data is `rate * time`. An
    unbounded goal is reported as NaN. Cache columns are present only for
    policies that keep a cache.
    """
    s = result.scheduler
    duration = float(result.end_time - result.start_time)
    energy = float(result.energy)
    sent = float(result.wifi.get("sent", 0.0))

    row: Dict[str, Any] = {
        "scenario": scenario,
        "policy": policy,
        "start_time": float(result.start_time),
        "end_time": float(result.end_time),
        "energy": energy,
        "wifi_energy": float(result.wifi.get("energy", 0.0)),
        "cell_energy": float(result.cell.get("energy", 0.0)),
        "mean_power": energy / duration if duration > 0 else float("nan"),
        "sent": sent,
        "received": float(result.wifi.get("received", 0.0)),
        "energy_per_unit_sent": energy / sent if sent > 0 else float("nan"),
        "achieved": float(s.get("achieved", 0.0)),
        "goal": _finite_or_nan(s.get("goal", float("inf"))),
        "queries": int(s.get("queries", 0)),
        "wifi_scans": int(result.wifi.get("scans", 0)),
        "associations": int(result.wifi.get("associations", 0)),
        "failed_associations": int(result.wifi.get("failed_associations", 0)),
        "lost_links": len(result.lost_links),
        "events": int(result.events),
    }
    if "cache_hits" in s:
        hits, misses = int(s["cache_hits"]), int(s["cache_misses"])
        row["cache_hits"] = hits
        row["cache_misses"] = misses
        row["cache_hit_rate"] = hits / (hits + misses) if (hits + misses) else float("nan")
    if "scheduled_blocks" in s:
        row["scheduled_blocks"] = int(s["scheduled_blocks"])
        row["capacity"] = float(s["capacity"])

    return pd.DataFrame([row])


# ---------------------------- blocks ----------------------------


def summarize_blocks(blocks: Sequence[Block]) -> pd.DataFrame:
    """Per-block table (start, end, length, cost), in start order."""
    rows: List[Dict[str, float]] = [
        {"start": float(b.start), "end": float(b.end), "length": float(b.length), "cost": float(b.cost)}
        for b in sorted(blocks, key=lambda b: b.start)
    ]
    return pd.DataFrame(rows, columns=["start", "end", "length", "cost"])


def describe_blocks(blocks: Sequence[Block]) -> Dict[str, float]:
    """Distribution of block lengths and of the gaps between blocks."""
    ordered = sorted(blocks, key=lambda b: b.start)
    lengths = [float(b.length) for b in ordered]
    gaps = [float(b.start - a.end) for a, b in zip(ordered, ordered[1:])]
    return {
        "n_blocks": len(ordered),
        "total_length": float(np.sum(lengths)) if lengths else 0.0,
        "length_mean": float(np.mean(lengths)) if lengths else float("nan"),
        "length_p50": _quantile(lengths, 0.50),
        "length_p90": _quantile(lengths, 0.90),
        "length_max": float(np.max(lengths)) if lengths else float("nan"),
        "gap_mean": float(np.mean(gaps)) if gaps else float("nan"),
        "gap_p50": _quantile(gaps, 0.50),
        "gap_p90": _quantile(gaps, 0.90),
    }
