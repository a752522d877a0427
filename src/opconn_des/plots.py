from __future__ import annotations

from typing import List, Optional, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .models import Block


def _ordered_policies(
    keys: Sequence[str],
    policy_order: Optional[Sequence[str]] = None,
) -> List[str]:
    if not policy_order:
        return list(keys)
    order = [p for p in policy_order if p in keys]
    rest = [p for p in keys if p not in order]
    return order + rest


# ---------------------------- Figures ----------------------------


def plot_availability(
    blocks: Sequence[Block],
    outpath: str,
    title: str = "",
    *,
    schedule: Sequence[Block] = (),
) -> None:
    """Availability blocks of a trace, with the blocks a schedule picked.

    Row 0 shows every availability block, row 1 the scheduled ones.
    """
    plt.figure(figsize=(6.2, 2.6))

    spans = [(float(b.start), float(b.length)) for b in blocks]
    if spans:
        plt.broken_barh(spans, (0.6, 0.8), facecolors="tab:blue", label="available")
    chosen = [(float(b.start), float(b.length)) for b in schedule]
    if chosen:
        plt.broken_barh(chosen, (1.6, 0.8), facecolors="tab:orange", label="scheduled")

    plt.yticks([1.0, 2.0], ["available", "scheduled"])
    plt.xlabel("Time")
    if title:
        plt.title(title)

    plt.grid(True, axis="x", alpha=0.3)
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()


def plot_energy_by_policy(
    df: pd.DataFrame,
    outpath: str,
    title: str = "",
    *,
    value: str = "energy",
    policy_order: Optional[Sequence[str]] = ("OPTIMAL", "STEPOPTIMAL", "DUMB", "EB", "STATIC", "USERSTATIC", "GSMCACHE"),
) -> None:
    """Bar chart of one summary column (`value`) per policy."""
    if df.empty:
        raise ValueError("No rows to plot.")
    per_policy = df.groupby("policy")[value].mean()
    names = _ordered_policies(list(per_policy.index), policy_order)
    vals = np.asarray([float(per_policy[p]) for p in names], dtype=float)

    plt.figure(figsize=(6.2, 3.9))
    plt.bar(np.arange(len(names)), vals)
    plt.xticks(np.arange(len(names)), names, rotation=30, ha="right")
    plt.ylabel(value.replace("_", " "))
    if title:
        plt.title(title)

    plt.grid(True, axis="y", alpha=0.3)
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()
