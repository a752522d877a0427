"""opconn_des

A trace-driven discrete-event simulation (DES) of opportunistic
connectivity management on a mobile device: a scheduler decides when the
WiFi radio is turned on, scans, associates and transmits, and the run
measures the energy spent against the data moved.

Design goals:
- Minimal dependencies (PyYAML, numpy, pandas, matplotlib)
- Radios replay recorded WiFi/cell observations sample by sample
- Interchangeable policies, from naive scanning to offline-optimal oracles
"""

# Core engine
from .errors import (
    SimulationError,
    EventQueueError,
    MediumError,
    RadioError,
    AssociationError,
    ProfileError,
    SchedulerError,
    ConfigError,
)
from .eventqueue import Event, EventKind, EventQueue
from .medium import Medium
from .models import Block
from .profile import Profile, RadioProfile
from .commands import (
    Interface,
    WiFiState,
    CellState,
    TurnOn,
    TurnOff,
    Scan,
    Associate,
    Transmit,
    Nop,
    Status,
    Context,
)
from .radio import RadioConfig, WiFiRadio, CellRadio

# Policies
from .policies import (
    PolicyName,
    InteractionTrace,
    Scheduler,
    DumbScheduler,
    BackoffScheduler,
    StaticScheduler,
    UserStaticScheduler,
    CachingScheduler,
    OfflineOptimalScheduler,
    StepOptimalScheduler,
    build_scheduler,
)

# Inputs + orchestration
from .traces import TraceDataset, load_interactions
from .config import SchedulerConfig, ScenarioConfig, load_scenario
from .sim import Simulation, RunResult

# Metrics + plots
from .metrics import summarize_run, summarize_blocks, describe_blocks
from .plots import plot_availability, plot_energy_by_policy


__all__ = [
    # errors
    "SimulationError",
    "EventQueueError",
    "MediumError",
    "RadioError",
    "AssociationError",
    "ProfileError",
    "SchedulerError",
    "ConfigError",
    # engine
    "Event",
    "EventKind",
    "EventQueue",
    "Medium",
    "Block",
    "Profile",
    "RadioProfile",
    # radio vocabulary
    "Interface",
    "WiFiState",
    "CellState",
    "TurnOn",
    "TurnOff",
    "Scan",
    "Associate",
    "Transmit",
    "Nop",
    "Status",
    "Context",
    "RadioConfig",
    "WiFiRadio",
    "CellRadio",
    # policies
    "PolicyName",
    "InteractionTrace",
    "Scheduler",
    "DumbScheduler",
    "BackoffScheduler",
    "StaticScheduler",
    "UserStaticScheduler",
    "CachingScheduler",
    "OfflineOptimalScheduler",
    "StepOptimalScheduler",
    "build_scheduler",
    # inputs / runs
    "TraceDataset",
    "load_interactions",
    "SchedulerConfig",
    "ScenarioConfig",
    "load_scenario",
    "Simulation",
    "RunResult",
    # outputs
    "summarize_run",
    "summarize_blocks",
    "describe_blocks",
    "plot_availability",
    "plot_energy_by_policy",
]
