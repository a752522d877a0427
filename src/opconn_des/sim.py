from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .commands import (
    Associate,
    CellState,
    Command,
    Context,
    Interface,
    Nop,
    Scan,
    Status,
    Transmit,
    TurnOff,
    TurnOn,
    WiFiState,
)
from .config import ScenarioConfig, SchedulerConfig
from .errors import AssociationError, ConfigError, RadioError, SchedulerError
from .eventqueue import ActorRef, Event, EventKind, EventQueue
from .medium import Medium
from .policies import InteractionTrace, Scheduler, build_scheduler
from .radio import CellRadio, RadioConfig, WiFiRadio
from .traces import TraceDataset, load_interactions

logger = logging.getLogger(__name__)

WIFI_ACTOR = "wifi"
CELL_ACTOR = "cell"
SCHEDULER_ACTOR = "scheduler"


def _send(queue: EventQueue, event: Event) -> bool:
    """Enqueue `event`; an event past the end of the run ends that chain."""
    if event.time > queue.end_time:
        logger.debug("dropping %s (after end of run %s)", event.describe(), queue.end_time)
        return False
    queue.enqueue(event)
    return True


# ------------------------------ Actors ------------------------------


class WiFiRadioActor:
    """Executes scheduler commands on a `WiFiRadio` and replies with its status."""

    def __init__(self, radio: WiFiRadio, scheduler: ActorRef = SCHEDULER_ACTOR, name: str = WIFI_ACTOR) -> None:
        self.name = name
        self.radio = radio
        self.scheduler = scheduler

    def handle_event(self, event: Event, queue: EventQueue) -> None:
        if event.kind is not EventKind.COMMAND:
            logger.debug("%s: ignoring %s", self.name, event.describe())
            return
        self.radio.step(event.time)
        status = self.execute(event.payload)
        _send(queue, Event(self.radio.now, EventKind.STATUS, self.name, self.scheduler, status))

    def execute(self, command: Command) -> Status:
        r = self.radio
        if isinstance(command, TurnOn):
            r.turn_on()
        elif isinstance(command, TurnOff):
            r.turn_off()
            r.step(command.until)
        elif isinstance(command, Scan):
            if r.state not in (WiFiState.CONNECTED, WiFiState.DISCONNECTED):
                return r.check_state()
            observed = r.scan()
            if r.state is WiFiState.CONNECTED:
                return Status(Interface.WIFI, WiFiState.SCANNING_CONNECTED, ap_id=r.ap_id, observed=observed)
            return Status(Interface.WIFI, WiFiState.SCANNING_DISCONNECTED, observed=observed)
        elif isinstance(command, Associate):
            try:
                r.associate(command.ap_id)
            except AssociationError:
                return Status(Interface.WIFI, WiFiState.ASSOCIATING)
        elif isinstance(command, Transmit):
            r.transmit(command.until)
        elif isinstance(command, Nop):
            r.nop()
        else:
            raise RadioError(f"{self.name}: unsupported command {command!r}")
        return r.check_state()


class CellRadioActor:
    """Executes commands addressed to the cellular interface."""

    def __init__(self, radio: CellRadio, scheduler: ActorRef = SCHEDULER_ACTOR, name: str = CELL_ACTOR) -> None:
        self.name = name
        self.radio = radio
        self.scheduler = scheduler

    def handle_event(self, event: Event, queue: EventQueue) -> None:
        if event.kind is not EventKind.COMMAND:
            logger.debug("%s: ignoring %s", self.name, event.describe())
            return
        self.radio.step(event.time)
        status = self.execute(event.payload)
        _send(queue, Event(self.radio.now, EventKind.STATUS, self.name, self.scheduler, status))

    def execute(self, command: Command) -> Status:
        r = self.radio
        if isinstance(command, TurnOn):
            r.turn_on()
        elif isinstance(command, TurnOff):
            r.turn_off()
            r.step(command.until)
        elif isinstance(command, Scan):
            observed = r.scan()
            if r.state is not CellState.OFF:
                return Status(Interface.CELL, CellState.SCANNING, observed=observed)
        elif isinstance(command, Associate):
            r.associate(command.ap_id)
        elif isinstance(command, Transmit):
            r.transmit(command.until)
        elif isinstance(command, Nop):
            r.nop()
        else:
            raise RadioError(f"{self.name}: unsupported command {command!r}")
        return r.check_state()


class SchedulerActor:
    """Turns radio statuses into scheduler queries and routes the commands."""

    def __init__(self, scheduler: Scheduler, routes: Dict[Interface, ActorRef], name: str = SCHEDULER_ACTOR) -> None:
        self.name = name
        self.scheduler = scheduler
        self.routes = dict(routes)
        self.history: List[Tuple[float, Command]] = []

    def handle_event(self, event: Event, queue: EventQueue) -> None:
        if event.kind is not EventKind.STATUS:
            logger.debug("%s: ignoring %s", self.name, event.describe())
            return
        context = Context.from_status(event.time, event.payload)
        command = self.scheduler.query(context)
        try:
            dest = self.routes[command.interface]
        except KeyError:
            raise SchedulerError(f"{self.name}: no radio for interface {command.interface.value}") from None
        self.history.append((event.time, command))
        _send(queue, Event(event.time, EventKind.COMMAND, self.name, dest, command))


# ------------------------------ Simulation ------------------------------


@dataclass
class RunResult:
    policy: str
    start_time: float
    end_time: float
    events: int
    wifi: Dict[str, float] = field(default_factory=dict)
    cell: Dict[str, float] = field(default_factory=dict)
    scheduler: Dict[str, Any] = field(default_factory=dict)
    lost_links: List[Tuple[float, str]] = field(default_factory=list)

    @property
    def energy(self) -> float:
        return float(self.wifi.get("energy", 0.0)) + float(self.cell.get("energy", 0.0))


class Simulation:
    """One radio pair driven by one scheduler over a trace.

    The run starts with a TurnOn command to the WiFi radio at `start_time`
    and ends when the queue drains or reaches `end_time`. `end_time` is
    clamped to the last full sample of the WiFi medium.
    """

    def __init__(
        self,
        wifi_medium: Medium,
        cell_medium: Optional[Medium] = None,
        *,
        radio_config: Optional[RadioConfig] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        scheduler: Optional[Scheduler] = None,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
        user: Optional[InteractionTrace] = None,
        cell_scan_cost: float = 0.0,
    ) -> None:
        self.wifi_medium = wifi_medium
        if cell_medium is None:
            cell_medium = Medium([], wifi_medium.timestep, name="cell",
                                 start_time=wifi_medium.start_time, end_time=wifi_medium.end_time,
                                 optimistic=False)
        self.cell_medium = cell_medium

        last = wifi_medium.index_of(wifi_medium.end_time)
        self.start_time = float(wifi_medium.start_time if start_time is None else max(start_time, wifi_medium.start_time))
        self.end_time = float(last if end_time is None else min(end_time, last))
        if self.end_time <= self.start_time:
            raise ConfigError(f"Empty run: start {self.start_time}, end {self.end_time}.")

        self.radio = WiFiRadio("wifi0", wifi_medium, radio_config)
        self.cell_radio = CellRadio("cell0", cell_medium, scan_cost=cell_scan_cost)

        if scheduler is None:
            scfg = scheduler_config or SchedulerConfig()
            bitrate = scfg.bitrate if scfg.bitrate is not None else self.radio.tx_rate
            scheduler = build_scheduler(
                scfg,
                medium=wifi_medium,
                start_time=self.start_time,
                end_time=self.end_time,
                bitrate=bitrate,
                fixed_costs=self.radio.fixed_costs,
                user=user,
            )
        elif user is not None:
            scheduler.register_user(user)
        self.scheduler = scheduler

        self.queue = EventQueue(self.end_time)
        self.wifi_actor = WiFiRadioActor(self.radio)
        self.cell_actor = CellRadioActor(self.cell_radio)
        self.scheduler_actor = SchedulerActor(
            scheduler, {Interface.WIFI: self.wifi_actor.name, Interface.CELL: self.cell_actor.name}
        )
        for actor in (self.wifi_actor, self.cell_actor, self.scheduler_actor):
            self.queue.register(actor)

    @classmethod
    def from_dataset(cls, dataset: TraceDataset, *, optimistic: bool = True, **kwargs) -> "Simulation":
        return cls(
            Medium.wifi(dataset, optimistic=optimistic),
            Medium.cellular(dataset, optimistic=False),
            **kwargs,
        )

    @classmethod
    def from_scenario(cls, cfg: ScenarioConfig, kind: Optional[str] = None,
                      dataset: Optional[TraceDataset] = None) -> "Simulation":
        cfg.validate()
        dataset = dataset or TraceDataset.from_file(cfg.trace, cfg.timestep)
        user = load_interactions(cfg.interactions) if cfg.interactions is not None else None
        return cls.from_dataset(
            dataset,
            optimistic=cfg.optimistic_medium,
            radio_config=cfg.radio,
            scheduler_config=cfg.scheduler_for(kind or cfg.scheduler.kind),
            start_time=cfg.start_time,
            end_time=cfg.end_time,
            user=user,
        )

    def run(self) -> RunResult:
        self.radio.initialize(self.start_time)
        self.cell_radio.initialize(self.start_time)
        logger.info("%s: run %s..%s on %r", self.scheduler.name, self.start_time, self.end_time, self.wifi_medium)

        self.queue.enqueue(Event(self.start_time, EventKind.COMMAND, SCHEDULER_ACTOR, WIFI_ACTOR, TurnOn()))
        events = self.queue.run()

        result = RunResult(
            policy=self.scheduler.name,
            start_time=self.start_time,
            end_time=self.end_time,
            events=events,
            wifi=self.radio.summary(self.end_time),
            cell=self.cell_radio.summary(self.end_time),
            scheduler=self.scheduler.stats(),
            lost_links=list(self.radio.lost_links),
        )
        logger.info("%s: done after %d events, energy %.6g, achieved %.6g",
                    result.policy, events, result.energy, self.scheduler.achieved)
        return result
