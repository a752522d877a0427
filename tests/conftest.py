import sys
from pathlib import Path

# Ensure package import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

import pytest

from opconn_des.medium import Medium
from opconn_des.radio import RadioConfig


def make_medium(visible, end_time, timestep=1, start_time=0, **kwargs):
    """Medium with one sample per step; `visible(t)` lists the (id, signal) pairs at t."""
    samples = [(t, visible(t)) for t in range(start_time, end_time + 1, timestep)]
    return Medium(samples, timestep, start_time=start_time, end_time=end_time, **kwargs)


@pytest.fixture
def radio_config() -> RadioConfig:
    return RadioConfig(
        disc_run=1.0,
        con_run=2.0,
        discscan_run=3.0,
        conscan_run=3.0,
        tx_run=4.0,
        rx_run=4.0,
        off_to_disc=10.0,
        disc_to_off=1.0,
        disc_to_con=20.0,
        con_to_disc=2.0,
        conscan_time=1.0,
        discscan_time=1.0,
        association_time=1.0,
    )


@pytest.fixture
def gap_medium() -> Medium:
    """AP "a" for t in [0, 10), nothing in [10, 20), "a" again in [20, 30)."""
    return make_medium(lambda t: [("a", -50)] if (t < 10 or t >= 20) else [], end_time=29)
