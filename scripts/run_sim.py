#!/usr/bin/env python
from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
import sys
from typing import List

# Allow running without installing the package:
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

import pandas as pd

from opconn_des.config import load_scenario
from opconn_des.logs import configure_logging
from opconn_des.medium import Medium
from opconn_des.metrics import summarize_run, summarize_blocks, describe_blocks
from opconn_des.plots import plot_availability, plot_energy_by_policy
from opconn_des.policies import OfflineOptimalScheduler
from opconn_des.sim import Simulation
from opconn_des.traces import TraceDataset


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, required=True, help="Path to YAML scenario (e.g., configs/example.yaml)")
    ap.add_argument("--policies", type=str, default=None,
                    help="Comma-separated policy names, e.g. 'DUMB,EB'. Overrides config.")
    ap.add_argument("--seed", type=int, default=None, help="Scheduler RNG seed. Overrides config.")
    ap.add_argument("--goal", type=float, default=None, help="Transmission goal (0 = unbounded). Overrides config.")
    ap.add_argument("--outdir", type=str, default=None, help="Output directory. Default: results/<run_name>.")
    ap.add_argument("--log_level", type=str, default=None, help="DEBUG, INFO, WARNING or ERROR. Overrides config.")
    ap.add_argument("--no_plots", action="store_true", help="Disable plot generation (metrics only).")

    args = ap.parse_args()

    cfg = load_scenario(args.config)
    overrides = {}
    if args.seed is not None or args.goal is not None:
        sched = cfg.scheduler
        if args.seed is not None:
            sched = dataclasses.replace(sched, seed=int(args.seed))
        if args.goal is not None:
            sched = dataclasses.replace(sched, goal=float(args.goal))
        overrides["scheduler"] = sched
    if args.policies:
        overrides["policies"] = tuple(p.strip() for p in args.policies.split(",") if p.strip())
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)
        cfg.validate()

    configure_logging(cfg.log_level)

    outdir = Path(args.outdir) if args.outdir else ROOT / "results" / cfg.run_name
    outdir.mkdir(parents=True, exist_ok=True)

    dataset = TraceDataset.from_file(cfg.trace, cfg.timestep)
    kinds = cfg.policy_kinds()
    print(f"[INFO] Run: {cfg.run_name} | samples={len(dataset)} | policies={list(kinds)}")

    rows: List[pd.DataFrame] = []
    schedule = ()
    for kind in kinds:
        sim = Simulation.from_scenario(cfg, kind=kind, dataset=dataset)
        result = sim.run()
        rows.append(summarize_run(cfg.run_name, kind, result))
        if isinstance(sim.scheduler, OfflineOptimalScheduler):
            schedule = sim.scheduler.schedule
        print(f"[INFO] {kind}: energy={result.energy:.4g} sent={result.wifi.get('sent', 0.0):.4g} "
              f"events={result.events}")

    metrics = pd.concat(rows, ignore_index=True)
    metrics.to_csv(outdir / "metrics.csv", index=False)

    medium = Medium.wifi(dataset, optimistic=cfg.optimistic_medium)
    blocks = medium.availability_blocks(cfg.start_time, cfg.end_time)
    summarize_blocks(blocks).to_csv(outdir / "blocks.csv", index=False)
    pd.DataFrame([describe_blocks(blocks)]).to_csv(outdir / "blocks_summary.csv", index=False)

    print(f"[OK] Wrote metrics:\n - {outdir/'metrics.csv'}\n - {outdir/'blocks.csv'}\n - {outdir/'blocks_summary.csv'}")

    if not args.no_plots:
        plot_availability(
            blocks,
            str(outdir / f"fig_{cfg.run_name}_availability.pdf"),
            title=f"{cfg.run_name}: WiFi availability",
            schedule=schedule,
        )
        plot_energy_by_policy(
            metrics,
            str(outdir / f"fig_{cfg.run_name}_energy.pdf"),
            title=f"{cfg.run_name}: energy by policy",
        )
        print(f"[OK] Plots written into {outdir}.")


if __name__ == "__main__":
    main()
