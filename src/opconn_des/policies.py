from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Literal, Optional, Tuple, TYPE_CHECKING

import numpy as np

from .commands import (
    Associate,
    CellState,
    Command,
    Context,
    Interface,
    Nop,
    Scan,
    TurnOff,
    Transmit,
    TurnOn,
    WiFiState,
    ids_of,
    strongest,
)
from .errors import ConfigError, SchedulerError
from .medium import Medium, ObservationSet
from .models import Block

if TYPE_CHECKING:
    from .config import SchedulerConfig

logger = logging.getLogger(__name__)


# Registry names (as used in scenario files)
PolicyName = Literal["DUMB", "EB", "STATIC", "USERSTATIC", "GSMCACHE", "OPTIMAL", "STEPOPTIMAL"]

_SCAN_RESULTS = (WiFiState.SCANNING_DISCONNECTED, WiFiState.SCANNING_CONNECTED)


# ------------------------------ User ------------------------------


@dataclass(frozen=True)
class InteractionTrace:
    """Times at which the user switched the device on, sorted."""
    on_times: Tuple[float, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "on_times", tuple(sorted(float(t) for t in self.on_times)))

    def next_after(self, t: float) -> Optional[float]:
        """First interaction strictly after `t` (None if there is none)."""
        i = bisect.bisect_right(self.on_times, float(t))
        return self.on_times[i] if i < len(self.on_times) else None

    def __len__(self) -> int:
        return len(self.on_times)


# ------------------------------ Base ------------------------------


class Scheduler:
    """Decides the next radio command from a `Context`.

    The base class does the goal bookkeeping shared by all policies:
      - `achieved` grows by `(now - last) * bitrate` whenever a CONNECTED or
        DISCONNECTED status closes a transmit window
      - once `achieved >= goal` the radio is parked until `end_time`
      - a failed association (ASSOCIATING status) is answered with a rescan

    Subclasses fill in `on_off`, `on_disconnected`, `on_connected` and
    `on_scan`.
    """

    name = "BASE"

    def __init__(self, end_time: float, bitrate: float) -> None:
        if float(bitrate) <= 0:
            raise ConfigError(f"{self.name}: bitrate must be > 0 (got {bitrate}).")
        self.end_time = float(end_time)
        self.bitrate = float(bitrate)
        self.goal = math.inf
        self.energy_sensitivity = 0.0
        self.delay_sensitivity = 0.0
        self.achieved = 0.0
        self.queries = 0
        self._last_connected = 0.0
        self._was_connected = False

    def initialize(self, goal: float, energy_sensitivity: float = 0.0, delay_sensitivity: float = 0.0) -> None:
        """Set the transmission goal; 0 means "as much as possible"."""
        if goal < 0:
            raise ConfigError(f"{self.name}: goal must be >= 0 (got {goal}).")
        self.goal = math.inf if goal == 0 else float(goal)
        self.energy_sensitivity = float(energy_sensitivity)
        self.delay_sensitivity = float(delay_sensitivity)
        self.achieved = 0.0
        self._last_connected = 0.0
        self._was_connected = False

    def register_user(self, user: InteractionTrace) -> None:
        return

    @property
    def done(self) -> bool:
        return self.achieved >= self.goal

    # ---------------------------- bookkeeping ----------------------------

    def _account(self, now: float) -> None:
        if self._was_connected:
            self.achieved += (now - self._last_connected) * self.bitrate
        self._was_connected = False

    def _transmit(self, now: float) -> Command:
        until = min((self.goal - self.achieved) / self.bitrate + now, self.end_time)
        if until <= now:
            return TurnOff(self.end_time)
        self._last_connected = now
        self._was_connected = True
        return Transmit(until)

    def _park_until(self, t: float) -> TurnOff:
        return TurnOff(min(float(t), self.end_time))

    # ------------------------------ query ------------------------------

    def query(self, context: Context) -> Command:
        context.validate()
        self.queries += 1
        now = context.now
        state = context.state

        if context.interface is Interface.CELL:
            command = self.on_cell(context)
        elif state is WiFiState.CONNECTED:
            self._account(now)
            command = self._park_until(self.end_time) if self.done else self.on_connected(context)
        elif state is WiFiState.DISCONNECTED:
            self._account(now)
            command = self._park_until(self.end_time) if self.done else self.on_disconnected(context)
        elif state in _SCAN_RESULTS:
            command = self.on_scan(context, context.require_observed())
        elif state is WiFiState.OFF:
            command = Nop() if self.done else self.on_off(context)
        elif state is WiFiState.ASSOCIATING:
            command = self.on_association_failed(context)
        else:
            raise SchedulerError(f"{self.name}: unexpected radio state in {context}")

        logger.debug("%s: query %s -> %s", self.name, context, command)
        return command

    # ------------------------------ hooks ------------------------------

    def on_off(self, context: Context) -> Command:
        return TurnOn()

    def on_disconnected(self, context: Context) -> Command:
        return Scan()

    def on_connected(self, context: Context) -> Command:
        return self._transmit(context.now)

    def on_scan(self, context: Context, observed: ObservationSet) -> Command:
        ap = strongest(observed)
        return Scan() if ap is None else Associate(ap)

    def on_association_failed(self, context: Context) -> Command:
        return Scan()

    def on_cell(self, context: Context) -> Command:
        raise SchedulerError(f"{self.name}: does not use the cellular radio ({context})")

    def stats(self) -> Dict[str, float]:
        return {"queries": self.queries, "achieved": self.achieved, "goal": self.goal}


# ------------------------------ Heuristics ------------------------------


class DumbScheduler(Scheduler):
    """Scan whenever disconnected, associate with the strongest AP."""

    name = "DUMB"


class BackoffScheduler(Scheduler):
    """Exponential back-off after every empty scan.

    The first empty scan after a success backs off by 1 time unit, every
    further one doubles it (capped at `max_backoff`). The radio is parked
    until a random time in [now + backoff/2, now + backoff].

    A scan that sees any AP counts as the success: the backoff is reset
    when the association is issued, not when it completes, so a failed
    association followed by an empty scan waits 1 again.
    """

    name = "EB"

    def __init__(self, end_time: float, bitrate: float, max_backoff: float,
                 rng: Optional[np.random.Generator] = None) -> None:
        super().__init__(end_time, bitrate)
        if float(max_backoff) < 1:
            raise ConfigError(f"{self.name}: max_backoff must be >= 1 (got {max_backoff}).")
        self.max_backoff = float(max_backoff)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.backoff = 0.0
        self.backoffs = 0

    def next_retry(self, now: float) -> float:
        b = self.backoff
        t = math.floor(now + float(self.rng.uniform(b / 2.0, b)))
        t = max(t, math.ceil(now + b / 2.0))
        return min(t, now + b, self.end_time)

    def on_scan(self, context: Context, observed: ObservationSet) -> Command:
        ap = strongest(observed)
        if ap is not None:
            self.backoff = 0.0
            return Associate(ap)

        self.backoff = 1.0 if self.backoff == 0 else min(self.backoff * 2.0, self.max_backoff)
        self.backoffs += 1
        retry = self.next_retry(context.now)
        logger.debug("%s: backing off until %s (backoff %s, max %s)",
                     self.name, retry, self.backoff, self.max_backoff)
        return TurnOff(retry)


class StaticScheduler(Scheduler):
    """Rescan at a fixed interval while nothing is in range."""

    name = "STATIC"

    def __init__(self, end_time: float, bitrate: float, interval: float, *,
                 randomize: bool = False, rng: Optional[np.random.Generator] = None) -> None:
        super().__init__(end_time, bitrate)
        if float(interval) <= 0:
            raise ConfigError(f"{self.name}: interval must be > 0 (got {interval}).")
        self.interval = float(interval)
        self.randomize = bool(randomize)
        self.rng = rng if rng is not None else np.random.default_rng()

    def next_scan(self, now: float) -> float:
        if self.randomize:
            return now + float(self.rng.uniform(self.interval / 2.0, self.interval))
        return now + self.interval

    def on_scan(self, context: Context, observed: ObservationSet) -> Command:
        ap = strongest(observed)
        if ap is not None:
            return Associate(ap)
        return self._park_until(self.next_scan(context.now))


class UserStaticScheduler(StaticScheduler):
    """Static, but also rescans when the user touches the device."""

    name = "USERSTATIC"

    def __init__(self, end_time: float, bitrate: float, interval: float, *,
                 randomize: bool = False, rng: Optional[np.random.Generator] = None,
                 user: Optional[InteractionTrace] = None) -> None:
        super().__init__(end_time, bitrate, interval, randomize=randomize, rng=rng)
        self.user = user or InteractionTrace()
        self.user_scans = 0

    def register_user(self, user: InteractionTrace) -> None:
        self.user = user

    def next_scan(self, now: float) -> float:
        t = super().next_scan(now)
        touch = self.user.next_after(now)
        if touch is not None and touch < t:
            logger.debug("%s: user scan scheduled at %s", self.name, touch)
            self.user_scans += 1
            return touch
        return t


class CachingScheduler(Scheduler):
    """Uses cell-tower ids as a cheap location hint for WiFi scans.

    Maps the set of visible cell ids to the last WiFi scan taken there.
    When disconnected it asks the cellular radio for a scan; a cache hit
    skips the WiFi scan entirely.
    """

    name = "GSMCACHE"

    def __init__(self, end_time: float, bitrate: float, interval: float) -> None:
        super().__init__(end_time, bitrate)
        if float(interval) <= 0:
            raise ConfigError(f"{self.name}: interval must be > 0 (got {interval}).")
        self.interval = float(interval)
        self.cache: Dict[FrozenSet[str], ObservationSet] = {}
        self.last_cells: FrozenSet[str] = frozenset()
        self.hits = 0
        self.misses = 0
        self.wifi_scans = 0

    def _wifi_scan(self) -> Scan:
        self.wifi_scans += 1
        return Scan()

    def on_disconnected(self, context: Context) -> Command:
        return Scan(interface=Interface.CELL)

    def on_association_failed(self, context: Context) -> Command:
        # a fresh scan replaces the stale cache entry
        return self._wifi_scan()

    def on_cell(self, context: Context) -> Command:
        if context.state is not CellState.SCANNING:
            raise SchedulerError(f"{self.name}: expected a cell scan result, got {context}")
        self.last_cells = ids_of(context.require_observed())
        cached = self.cache.get(self.last_cells)
        if cached is None:
            self.misses += 1
            logger.debug("%s: cache miss for %s", self.name, sorted(self.last_cells))
            return self._wifi_scan()

        self.hits += 1
        ap = strongest(cached)
        logger.debug("%s: cache hit for %s -> %s", self.name, sorted(self.last_cells), ap)
        if ap is None:
            return self._park_until(context.now + self.interval)
        return Associate(ap)

    def on_scan(self, context: Context, observed: ObservationSet) -> Command:
        if self.last_cells:
            self.cache[self.last_cells] = observed
        else:
            logger.debug("%s: cache not updated (no cell ids)", self.name)
        ap = strongest(observed)
        if ap is None:
            return self._park_until(context.now + self.interval)
        return Associate(ap)

    def stats(self) -> Dict[str, float]:
        out = super().stats()
        out.update({"cache_hits": self.hits, "cache_misses": self.misses,
                    "wifi_scans": self.wifi_scans, "cache_size": len(self.cache)})
        return out


# ------------------------------ Oracles ------------------------------


class OfflineOptimalScheduler(Scheduler):
    """Knows the whole trace in advance and only wakes for chosen blocks.

    Availability blocks are ranked by
      cost = energy_sensitivity * fixed_costs / length + delay_sensitivity * start
    and taken greedily (cheapest first, ties by start) until their
    capacity covers the goal. The last block taken is shortened to what is
    still missing.
    """

    name = "OPTIMAL"

    def __init__(self, medium: Medium, start_time: float, end_time: float,
                 bitrate: float, fixed_costs: float) -> None:
        super().__init__(end_time, bitrate)
        self.medium = medium
        self.start_time = float(start_time)
        self.fixed_costs = float(fixed_costs)
        self.blocks: List[Block] = []
        self.schedule: Tuple[Block, ...] = ()
        self.capacity = 0.0
        self._starts: List[float] = []

    def block_cost(self, b: Block) -> float:
        return self.energy_sensitivity * self.fixed_costs / b.length + self.delay_sensitivity * b.start

    def initialize(self, goal: float, energy_sensitivity: float = 0.0, delay_sensitivity: float = 0.0) -> None:
        super().initialize(goal, energy_sensitivity, delay_sensitivity)
        self.blocks = [b for b in self.medium.availability_blocks(self.start_time, self.end_time) if b.length > 0]
        self.capacity = sum(b.length for b in self.blocks) * self.bitrate
        if math.isfinite(self.goal) and self.goal > self.capacity:
            logger.warning("%s: goal %s exceeds the trace capacity %s; using every block",
                           self.name, self.goal, self.capacity)

        ranked = sorted((b.with_cost(self.block_cost(b)) for b in self.blocks),
                        key=lambda b: (b.cost, b.start))
        chosen: List[Block] = []
        before = 0.0
        for b in ranked:
            if before + b.length * self.bitrate >= self.goal:
                need = math.ceil((self.goal - before) / self.bitrate)
                chosen.append(b.trimmed(need) if need < b.length else b)
                break
            chosen.append(b)
            before += b.length * self.bitrate

        self.schedule = tuple(sorted(chosen, key=lambda b: b.start))
        self._starts = [b.start for b in self.schedule]
        logger.info("%s: %d of %d blocks scheduled", self.name, len(self.schedule), len(self.blocks))

    def current_block(self, now: float) -> Optional[Block]:
        i = bisect.bisect_right(self._starts, now) - 1
        if i >= 0 and self.schedule[i].contains(now):
            return self.schedule[i]
        return None

    def next_block(self, now: float) -> Optional[Block]:
        i = bisect.bisect_right(self._starts, now)
        return self.schedule[i] if i < len(self.schedule) else None

    def query(self, context: Context) -> Command:
        if not self.medium.has_time(context.now):
            raise SchedulerError(f"{self.name}: the medium is not available at time {context.now}")
        return super().query(context)

    def _outside(self, now: float) -> Command:
        nxt = self.next_block(now)
        return self._park_until(nxt.start if nxt is not None else self.end_time)

    def on_off(self, context: Context) -> Command:
        return TurnOn() if self.current_block(context.now) else self._outside(context.now)

    def on_disconnected(self, context: Context) -> Command:
        return Scan() if self.current_block(context.now) else self._outside(context.now)

    def on_connected(self, context: Context) -> Command:
        block = self.current_block(context.now)
        if block is None:
            return self._outside(context.now)
        self._last_connected = context.now
        self._was_connected = True
        return Transmit(min(block.end, self.end_time))

    def on_scan(self, context: Context, observed: ObservationSet) -> Command:
        if self.current_block(context.now) is None:
            return self._outside(context.now)
        return super().on_scan(context, observed)

    def stats(self) -> Dict[str, float]:
        out = super().stats()
        out.update({"blocks": len(self.blocks), "scheduled_blocks": len(self.schedule),
                    "capacity": self.capacity})
        return out


class StepOptimalScheduler(Scheduler):
    """Peeks at the sample that governs the next step and acts on it."""

    name = "STEPOPTIMAL"

    def __init__(self, medium: Medium, end_time: float, bitrate: float) -> None:
        super().__init__(end_time, bitrate)
        self.medium = medium

    def query(self, context: Context) -> Command:
        context.validate()
        now = context.now
        if not self.medium.has_time(now):
            raise SchedulerError(f"{self.name}: the medium is not available at time {now}")
        self.queries += 1
        state = context.state

        if state in (WiFiState.CONNECTED, WiFiState.DISCONNECTED):
            self._account(now)
            if self.done:
                return self._park_until(self.end_time)
        elif self.done:
            return Nop()

        visible = self.medium.scan(now)
        if not visible:
            command: Command = Nop()
        elif state is WiFiState.OFF:
            command = TurnOn()
        elif state is WiFiState.DISCONNECTED:
            command = Associate(strongest(visible))
        elif state is WiFiState.CONNECTED:
            command = self._transmit(now)
        else:
            command = Nop()
        logger.debug("%s: query %s -> %s", self.name, context, command)
        return command


# ------------------------------ Registry ------------------------------


def build_scheduler(
    cfg: "SchedulerConfig",
    *,
    medium: Medium,
    start_time: float,
    end_time: float,
    bitrate: float,
    fixed_costs: float,
    user: Optional[InteractionTrace] = None,
) -> Scheduler:
    """Construct and initialize the scheduler named by `cfg.kind`."""
    cfg.validate()
    rng = np.random.default_rng(int(cfg.seed))
    kind = cfg.kind.upper()

    if kind == "DUMB":
        s: Scheduler = DumbScheduler(end_time, bitrate)
    elif kind == "EB":
        s = BackoffScheduler(end_time, bitrate, cfg.max_backoff, rng=rng)
    elif kind == "STATIC":
        s = StaticScheduler(end_time, bitrate, cfg.interval, randomize=cfg.randomize, rng=rng)
    elif kind == "USERSTATIC":
        s = UserStaticScheduler(end_time, bitrate, cfg.interval, randomize=cfg.randomize, rng=rng)
    elif kind == "GSMCACHE":
        s = CachingScheduler(end_time, bitrate, cfg.interval)
    elif kind == "OPTIMAL":
        s = OfflineOptimalScheduler(medium, start_time, end_time, bitrate, fixed_costs)
    elif kind == "STEPOPTIMAL":
        s = StepOptimalScheduler(medium, end_time, bitrate)
    else:
        raise ConfigError(f"Unknown scheduler: {cfg.kind}")

    if user is not None:
        s.register_user(user)
    s.initialize(cfg.goal, cfg.energy_sensitivity, cfg.delay_sensitivity)
    return s
