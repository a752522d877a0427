import math

import numpy as np
import pytest

from conftest import make_medium
from opconn_des.commands import (
    Associate,
    CellState,
    Context,
    Interface,
    Nop,
    Scan,
    Transmit,
    TurnOff,
    TurnOn,
    WiFiState,
    strongest,
)
from opconn_des.config import SchedulerConfig
from opconn_des.errors import ConfigError, SchedulerError
from opconn_des.policies import (
    BackoffScheduler,
    CachingScheduler,
    DumbScheduler,
    InteractionTrace,
    OfflineOptimalScheduler,
    StaticScheduler,
    StepOptimalScheduler,
    UserStaticScheduler,
    build_scheduler,
)

EMPTY = frozenset()


def scanned(now, *obs):
    return Context(now, WiFiState.SCANNING_DISCONNECTED, observed=frozenset(obs))


def cell_scan(now, *cells):
    return Context(now, CellState.SCANNING, interface=Interface.CELL,
                   observed=frozenset((c, -80) for c in cells))


def test_dumb_scheduler_protocol():
    s = DumbScheduler(end_time=1000, bitrate=10)
    s.initialize(0)
    assert s.goal == math.inf
    assert s.query(Context(0, WiFiState.OFF)) == TurnOn()
    assert s.query(Context(0, WiFiState.DISCONNECTED)) == Scan()
    assert s.query(scanned(1, ("b", -60), ("a", -40))) == Associate("a")
    assert s.query(scanned(1)) == Scan()
    assert s.query(Context(2, WiFiState.ASSOCIATING)) == Scan()
    assert s.query(Context(3, WiFiState.CONNECTED, ap_id="a")) == Transmit(1000)


def test_strongest_breaks_ties_by_id():
    assert strongest([("b", -50), ("a", -50), ("c", -70)]) == "a"
    assert strongest([]) is None


def test_malformed_contexts_are_rejected():
    s = DumbScheduler(end_time=100, bitrate=1)
    with pytest.raises(SchedulerError):
        s.query(Context(0, WiFiState.SCANNING_DISCONNECTED))
    with pytest.raises(SchedulerError):
        s.query(Context(0, WiFiState.CONNECTED))
    with pytest.raises(SchedulerError):
        s.query(Context(0, CellState.CONNECTED))
    with pytest.raises(SchedulerError):
        s.query(cell_scan(0, "c1"))


def test_goal_completion_parks_the_radio():
    s = DumbScheduler(end_time=1000, bitrate=100)
    s.initialize(1000)
    assert s.query(Context(2, WiFiState.CONNECTED, ap_id="a")) == Transmit(12)
    assert not s.done

    assert s.query(Context(12, WiFiState.CONNECTED, ap_id="a")) == TurnOff(1000)
    assert s.achieved == pytest.approx(1000)
    assert s.done
    assert s.query(Context(12, WiFiState.OFF)) == Nop()
    assert s.query(Context(13, WiFiState.DISCONNECTED)) == TurnOff(1000)


def test_lost_link_counts_partial_window():
    s = DumbScheduler(end_time=1000, bitrate=100)
    s.initialize(1000)
    s.query(Context(0, WiFiState.CONNECTED, ap_id="a"))
    assert s.query(Context(4, WiFiState.DISCONNECTED)) == Scan()
    assert s.achieved == pytest.approx(400)
    # a second DISCONNECTED does not count the same window again
    s.query(Context(5, WiFiState.DISCONNECTED))
    assert s.achieved == pytest.approx(400)


def test_negative_goal_is_rejected():
    with pytest.raises(ConfigError):
        DumbScheduler(end_time=10, bitrate=1).initialize(-1)


def test_backoff_grows_then_resets():
    s = BackoffScheduler(end_time=10_000, bitrate=1, max_backoff=64, rng=np.random.default_rng(0))
    s.initialize(0)

    expected = [1, 2, 4, 8]
    for i, b in enumerate(expected):
        now = 100.0 * (i + 1)
        cmd = s.query(scanned(now))
        assert isinstance(cmd, TurnOff)
        assert s.backoff == b
        assert now + b / 2 <= cmd.until <= now + b

    assert s.query(scanned(900, ("a", -40))) == Associate("a")
    cmd = s.query(scanned(1000))
    assert s.backoff == 1
    assert cmd.until == 1001


def test_backoff_is_capped_and_bounded_by_end():
    s = BackoffScheduler(end_time=5_000, bitrate=1, max_backoff=16, rng=np.random.default_rng(1))
    s.initialize(0)
    for now in range(10, 200, 10):
        s.query(scanned(now))
    assert s.backoff == 16
    cmd = s.query(scanned(4_995))
    assert cmd.until == 5_000


def test_static_rescans_at_fixed_interval():
    s = StaticScheduler(end_time=60, bitrate=1, interval=30)
    s.initialize(0)
    assert s.query(scanned(10)) == TurnOff(40)
    assert s.query(scanned(50)) == TurnOff(60)
    assert s.query(scanned(50, ("x", -1))) == Associate("x")


def test_static_randomized_interval():
    s = StaticScheduler(end_time=10_000, bitrate=1, interval=30, randomize=True, rng=np.random.default_rng(3))
    s.initialize(0)
    for _ in range(20):
        cmd = s.query(scanned(50))
        assert 65 <= cmd.until <= 80


def test_user_static_wakes_on_interaction():
    s = UserStaticScheduler(end_time=10_000, bitrate=1, interval=100)
    s.register_user(InteractionTrace((500, 60)))
    s.initialize(0)
    assert s.query(scanned(10)) == TurnOff(60)
    assert s.query(scanned(60)) == TurnOff(160)
    assert s.query(scanned(450)) == TurnOff(500)
    assert s.user_scans == 2


def test_interaction_trace_lookup():
    trace = InteractionTrace((30, 10, 20))
    assert trace.on_times == (10.0, 20.0, 30.0)
    assert trace.next_after(0) == 10
    assert trace.next_after(10) == 20
    assert trace.next_after(30) is None


def test_caching_scheduler_hit_skips_the_wifi_scan():
    s = CachingScheduler(end_time=10_000, bitrate=1, interval=60)
    s.initialize(0)

    assert s.query(Context(0, WiFiState.DISCONNECTED)) == Scan(interface=Interface.CELL)
    assert s.query(cell_scan(0, "c1", "c2")) == Scan()
    assert s.query(scanned(2, ("ap1", -40), ("ap2", -70))) == Associate("ap1")
    assert (s.hits, s.misses, s.wifi_scans) == (0, 1, 1)

    # back at the same place later
    assert s.query(Context(500, WiFiState.DISCONNECTED)) == Scan(interface=Interface.CELL)
    assert s.query(cell_scan(500, "c2", "c1")) == Associate("ap1")
    assert (s.hits, s.misses, s.wifi_scans) == (1, 1, 1)


def test_caching_scheduler_remembers_empty_places():
    s = CachingScheduler(end_time=10_000, bitrate=1, interval=60)
    s.initialize(0)
    assert s.query(cell_scan(0, "c9")) == Scan()
    assert s.query(scanned(2)) == TurnOff(62)
    assert s.query(cell_scan(62, "c9")) == TurnOff(122)
    assert s.wifi_scans == 1


def test_caching_scheduler_does_not_cache_without_cells():
    s = CachingScheduler(end_time=10_000, bitrate=1, interval=60)
    s.initialize(0)
    assert s.query(cell_scan(0)) == Scan()
    s.query(scanned(2, ("ap1", -40)))
    assert s.cache == {}
    assert s.query(cell_scan(10)) == Scan()


def test_caching_scheduler_rescans_after_failed_association():
    s = CachingScheduler(end_time=10_000, bitrate=1, interval=60)
    s.initialize(0)
    s.query(cell_scan(0, "c1"))
    s.query(scanned(2, ("ap1", -40)))
    assert s.query(Context(3, WiFiState.ASSOCIATING)) == Scan()
    assert s.query(scanned(5, ("ap2", -50))) == Associate("ap2")
    assert strongest(s.cache[frozenset({"c1"})]) == "ap2"


@pytest.mark.parametrize(
    "kind, cls",
    [
        ("DUMB", DumbScheduler),
        ("EB", BackoffScheduler),
        ("STATIC", StaticScheduler),
        ("USERSTATIC", UserStaticScheduler),
        ("GSMCACHE", CachingScheduler),
        ("OPTIMAL", OfflineOptimalScheduler),
        ("stepoptimal", StepOptimalScheduler),
    ],
)
def test_build_scheduler(kind, cls):
    medium = make_medium(lambda t: [("a", -50)], end_time=20)
    s = build_scheduler(SchedulerConfig(kind=kind, goal=5), medium=medium, start_time=0,
                        end_time=20, bitrate=1, fixed_costs=1)
    assert isinstance(s, cls)
    assert s.goal == 5


def test_build_scheduler_rejects_unknown_kind():
    medium = make_medium(lambda t: [], end_time=5)
    with pytest.raises(ConfigError):
        build_scheduler(SchedulerConfig(kind="NOPE"), medium=medium, start_time=0,
                        end_time=5, bitrate=1, fixed_costs=1)


def test_backoff_resets_when_an_ap_is_seen_even_if_association_fails():
    s = BackoffScheduler(end_time=10_000, bitrate=1, max_backoff=64, rng=np.random.default_rng(2))
    s.initialize(0)
    for now in (10, 20, 30):
        s.query(scanned(now))
    assert s.backoff == 4

    assert s.query(scanned(40, ("a", -40))) == Associate("a")
    assert s.query(Context(41, WiFiState.ASSOCIATING)) == Scan()
    s.query(scanned(42))
    assert s.backoff == 1
