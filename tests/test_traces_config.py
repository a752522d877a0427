import logging

import pytest

from conftest import ROOT
from opconn_des.config import SchedulerConfig, load_scenario
from opconn_des.errors import ConfigError
from opconn_des.medium import Medium
from opconn_des.traces import TraceDataset, load_interactions, parse_interactions, parse_line


def test_parse_line_scales_time_and_reads_both_sections():
    s = parse_line("3 2 ap1 -40 ap2 -70 1 cellA -90", timestep=60)
    assert s.time == 180
    assert s.wifi == (("ap1", -40), ("ap2", -70))
    assert s.cell == (("cellA", -90),)


def test_parse_line_skips_bogus_and_comment_lines():
    assert parse_line("", 60) is None
    assert parse_line("12 0", 60) is None
    assert parse_line("# time n (id sig)*", 60) is None
    assert parse_line("4 0 0", 60).wifi == ()


def test_dataset_skips_malformed_lines(caplog):
    lines = [
        "0 1 ap1 -40 0",
        "1 2 ap1 -40",          # truncated
        "x 1 ap1 -40 0",        # bad time
        "2 0 1 c1 -80",
    ]
    with caplog.at_level(logging.WARNING):
        ds = TraceDataset.parse(lines, timestep=10)
    assert len(ds) == 2
    assert (ds.start_time, ds.end_time) == (0, 20)
    assert ds.wifi_samples() == [(0, (("ap1", -40),)), (20, ())]
    assert ds.cell_samples()[1] == (20, (("c1", -80),))
    assert "malformed" in caplog.text


def test_dataset_must_not_be_empty():
    with pytest.raises(ConfigError):
        TraceDataset.parse(["# nothing here"], timestep=10)


def test_example_trace_builds_media():
    ds = TraceDataset.from_file(ROOT / "data" / "example_trace.txt", timestep=60)
    assert len(ds) == 60
    assert (ds.start_time, ds.end_time) == (0, 59 * 60)

    wifi = Medium.wifi(ds)
    cell = Medium.cellular(ds)
    assert wifi.scan(600) == frozenset({("00:1a:2b:00:00:01", -60), ("00:1a:2b:00:00:02", -75)})
    assert cell.scan(0) == frozenset({("310-410-1007", -85)})
    assert [(b.start, b.end) for b in wifi.availability_blocks()] == [(600, 1500), (2100, 3000)]

    frame = ds.to_frame()
    assert list(frame.columns) == ["time", "n_wifi", "n_cell"]
    assert int(frame["n_wifi"].max()) == 2


def test_interactions_keep_on_times(tmp_path):
    assert parse_interactions(["300 on", "420 off", "bad on", "", "100 on"]).on_times == (100.0, 300.0)

    path = tmp_path / "ui.txt"
    path.write_text("10 on\n20 off\n5 on\n", encoding="utf-8")
    trace = load_interactions(path)
    assert trace.on_times == (5.0, 10.0)


def test_load_scenario_resolves_relative_paths(tmp_path):
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "t.txt").write_text("0 1 a -1 0\n1 1 a -1 0\n", encoding="utf-8")
    cfg_path = tmp_path / "scenario.yaml"
    cfg_path.write_text(
        "trace: data/t.txt\n"
        "timestep: 5\n"
        "policies: [dumb, EB]\n"
        "radio:\n  con_run: 2.5\n"
        "scheduler:\n  kind: STATIC\n  goal: 100\n  interval: 30\n",
        encoding="utf-8",
    )
    cfg = load_scenario(cfg_path)
    assert cfg.run_name == "scenario"
    assert cfg.trace == tmp_path / "data" / "t.txt"
    assert cfg.timestep == 5
    assert cfg.radio.con_run == 2.5
    assert cfg.scheduler == SchedulerConfig(kind="STATIC", goal=100, interval=30)
    assert cfg.policy_kinds() == ("DUMB", "EB")
    assert cfg.scheduler_for("eb").kind == "EB"


@pytest.mark.parametrize(
    "body",
    [
        "timestep: 5\n",                                     # no trace
        "trace: t.txt\nradio:\n  bogus: 1\n",                 # unknown key
        "trace: t.txt\nscheduler:\n  kind: FASTEST\n",        # unknown scheduler
        "trace: t.txt\nscheduler:\n  interval: 0\n",
        "trace: t.txt\nradio:\n  disc_run: -1\n",
        "trace: t.txt\npolicies: [DUMB, NOPE]\n",
        "- just\n- a list\n",
    ],
)
def test_load_scenario_rejects_bad_files(tmp_path, body):
    path = tmp_path / "bad.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_scenario(path)


def test_example_scenario_is_valid():
    cfg = load_scenario(ROOT / "configs" / "example.yaml")
    assert cfg.trace.exists()
    assert cfg.interactions is not None and cfg.interactions.exists()
    assert len(cfg.policy_kinds()) == 7
