import math

import pandas as pd
import pytest

from opconn_des.metrics import describe_blocks, summarize_blocks, summarize_run
from opconn_des.models import Block
from opconn_des.plots import plot_availability, plot_energy_by_policy
from opconn_des.sim import RunResult


def _result(scheduler):
    return RunResult(
        policy="X",
        start_time=0,
        end_time=100,
        events=12,
        wifi={"energy": 30.0, "sent": 600.0, "received": 0.0, "scans": 4,
              "associations": 1, "failed_associations": 0},
        cell={"energy": 10.0},
        scheduler=scheduler,
        lost_links=[(50.0, "a")],
    )


def test_summarize_run_totals():
    df = summarize_run("toy", "DUMB", _result({"queries": 7, "achieved": 600.0, "goal": math.inf}))
    assert len(df) == 1
    row = df.iloc[0]
    assert row["energy"] == pytest.approx(40.0)
    assert row["mean_power"] == pytest.approx(0.4)
    assert row["energy_per_unit_sent"] == pytest.approx(40.0 / 600.0)
    assert math.isnan(row["goal"])
    assert row["lost_links"] == 1
    assert row["events"] == 12
    assert "cache_hits" not in df.columns
    assert "scheduled_blocks" not in df.columns


def test_summarize_run_policy_specific_columns():
    cache = summarize_run("toy", "GSMCACHE", _result(
        {"queries": 1, "achieved": 0.0, "goal": 10.0, "cache_hits": 3, "cache_misses": 1}))
    assert cache.iloc[0]["cache_hit_rate"] == pytest.approx(0.75)
    assert cache.iloc[0]["goal"] == 10.0

    optimal = summarize_run("toy", "OPTIMAL", _result(
        {"queries": 1, "achieved": 0.0, "goal": 10.0, "scheduled_blocks": 2, "capacity": 18.0}))
    assert optimal.iloc[0]["scheduled_blocks"] == 2
    assert optimal.iloc[0]["capacity"] == 18.0


def test_nothing_sent_has_no_energy_per_unit():
    result = RunResult(policy="X", start_time=0, end_time=10, events=1, wifi={"energy": 1.0})
    df = summarize_run("toy", "DUMB", result)
    assert math.isnan(df.iloc[0]["energy_per_unit_sent"])
    assert df.iloc[0]["achieved"] == 0.0


def test_block_tables():
    blocks = [Block(15, 20), Block(0, 10), Block(25, 28)]
    df = summarize_blocks(blocks)
    assert list(df.columns) == ["start", "end", "length", "cost"]
    assert df["start"].tolist() == [0.0, 15.0, 25.0]
    assert df["cost"].tolist() == [-10.0, -5.0, -3.0]

    d = describe_blocks(blocks)
    assert d["n_blocks"] == 3
    assert d["total_length"] == 18.0
    assert d["length_max"] == 10.0
    assert d["gap_mean"] == pytest.approx(5.0)
    assert d["length_p50"] == pytest.approx(5.0)


def test_describe_no_blocks():
    d = describe_blocks([])
    assert d["n_blocks"] == 0
    assert d["total_length"] == 0.0
    assert math.isnan(d["gap_p90"])
    assert summarize_blocks([]).empty


def test_plots_are_written(tmp_path):
    blocks = [Block(0, 10), Block(15, 20)]
    out = tmp_path / "availability.pdf"
    plot_availability(blocks, str(out), "toy", schedule=[Block(0, 4)])
    assert out.stat().st_size > 0

    df = pd.DataFrame({"policy": ["DUMB", "OPTIMAL", "DUMB"], "energy": [3.0, 1.0, 5.0]})
    bars = tmp_path / "energy.pdf"
    plot_energy_by_policy(df, str(bars), "toy")
    assert bars.stat().st_size > 0

    with pytest.raises(ValueError):
        plot_energy_by_policy(df.iloc[0:0], str(tmp_path / "empty.pdf"))
