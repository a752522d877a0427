from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Optional, Tuple, TYPE_CHECKING

from .commands import WiFiState
from .errors import ProfileError

if TYPE_CHECKING:
    from .radio import RadioConfig

logger = logging.getLogger(__name__)


class Profile:
    """Weighted state-machine cost meter.

    Each registered state has a running cost per time unit and a default
    fixed cost charged on entry. A (from, to) pair may override the fixed
    cost. On every change the outgoing state's running cost for the elapsed
    time is added first, then the fixed cost of the transition.
    """

    def __init__(self, name: str, unit: str = "") -> None:
        self.name = name
        self.unit = unit
        self.cost = 0.0
        self.now = 0.0
        self.state: Optional[str] = None
        self.transitions = 0
        self._running: Dict[str, float] = {}
        self._defaults: Dict[str, float] = {}
        self._fixed: Dict[Tuple[str, str], float] = {}
        self.dwell: Dict[str, float] = defaultdict(float)

    # ------------------------- registration -------------------------

    def register_state(self, state: str, running_cost: float, fixed_cost: float = 0.0) -> None:
        if state in self._running:
            raise ProfileError(f"{self.name}: state {state} has already been registered.")
        self._running[state] = float(running_cost)
        self._defaults[state] = float(fixed_cost)

    def set_transition_cost(self, current: str, nxt: str, cost: float) -> None:
        for s in (current, nxt):
            if s not in self._running:
                raise ProfileError(f"{self.name}: state {s} is not registered.")
        self._fixed[(current, nxt)] = float(cost)

    def is_registered(self, state: str) -> bool:
        return state in self._running

    def running_cost(self, state: str) -> float:
        return self._running[state]

    def transition_cost(self, current: str, nxt: str) -> float:
        return self._fixed.get((current, nxt), self._defaults[nxt])

    # --------------------------- lifecycle ---------------------------

    def initialize(self, state: str, time: float) -> None:
        if self.state is not None:
            raise ProfileError(f"{self.name}: the profile has already been initialized.")
        if state not in self._running:
            raise ProfileError(f"{self.name}: state {state} is not registered.")
        self.state = state
        self.now = float(time)

    def change_state(self, state: str, time: float) -> None:
        if self.state is None:
            raise ProfileError(f"{self.name}: profile has not been initialized with a state.")
        if state not in self._running:
            raise ProfileError(f"{self.name}: state {state} is not registered.")
        time = float(time)
        if time < self.now:
            raise ProfileError(f"{self.name}: time {time} has passed, it is now {self.now}.")

        if state == self.state:
            return

        elapsed = time - self.now
        self.cost += self._running[self.state] * elapsed
        self.dwell[self.state] += elapsed
        self.cost += self.transition_cost(self.state, state)
        self.transitions += 1
        logger.debug("%s: %s -> %s at %s (cost %.6g)", self.name, self.state, state, time, self.cost)

        self.now = time
        self.state = state

    def snapshot(self, time: float) -> float:
        """Cost accrued up to `time` as if the current state lasted until then."""
        if self.state is None:
            return self.cost
        return self.cost + self._running[self.state] * max(0.0, float(time) - self.now)

    def __str__(self) -> str:
        return f"{self.name}: {self.cost:.10g} {self.unit}".rstrip()


# ---------------------------- RadioProfile ----------------------------


class RadioProfile:
    """The ledgers a WiFi radio reports into: energy, sent and received data.

    State names are the radio's `WiFiState` values. Only energy carries
    fixed transition costs; the data profiles accrue `rate * time` while
    transmitting or receiving.
    """

    def __init__(self, name: str, config: "RadioConfig") -> None:
        S = WiFiState

        self.name = name
        self.power = Profile(f"{name} Power Profile", "Joule")
        running = {
            S.OFF: 0.0,
            S.DISCONNECTED: config.disc_run,
            S.CONNECTED: config.con_run,
            S.SCANNING_DISCONNECTED: config.discscan_run,
            S.SCANNING_CONNECTED: config.conscan_run,
            S.TRANSMITTING: config.tx_run,
            S.RECEIVING: config.rx_run,
            S.ASSOCIATING: config.disc_run,
        }
        for state, cost in running.items():
            self.power.register_state(state.value, cost)
        self.power.set_transition_cost(S.OFF.value, S.DISCONNECTED.value, config.off_to_disc)
        self.power.set_transition_cost(S.DISCONNECTED.value, S.OFF.value, config.disc_to_off)
        self.power.set_transition_cost(S.DISCONNECTED.value, S.CONNECTED.value, config.disc_to_con)
        self.power.set_transition_cost(S.CONNECTED.value, S.DISCONNECTED.value, config.con_to_disc)
        self.power.set_transition_cost(S.ASSOCIATING.value, S.CONNECTED.value, config.disc_to_con)

        self.sent = Profile(f"{name} Sent Data", "units")
        self.sent.register_state(S.OFF.value, 0.0)
        self.sent.register_state(S.TRANSMITTING.value, config.send_rate)

        self.received = Profile(f"{name} Received Data", "units")
        self.received.register_state(S.OFF.value, 0.0)
        self.received.register_state(S.RECEIVING.value, config.recv_rate)

        self._off = S.OFF.value
        self._tx = S.TRANSMITTING.value
        self._rx = S.RECEIVING.value

    def initialize(self, time: float) -> None:
        for p in (self.power, self.sent, self.received):
            p.initialize(self._off, time)

    def _change(self, power_state: str, time: float, *, tx: bool = False, rx: bool = False) -> None:
        self.power.change_state(power_state, time)
        self.sent.change_state(self._tx if tx else self._off, time)
        self.received.change_state(self._rx if rx else self._off, time)

    def turn_on(self, time: float) -> None:
        self._change(WiFiState.DISCONNECTED.value, time)

    def turn_off(self, time: float) -> None:
        self._change(self._off, time)

    def connect(self, time: float) -> None:
        self._change(WiFiState.CONNECTED.value, time)

    def disconnect(self, time: float) -> None:
        self._change(WiFiState.DISCONNECTED.value, time)

    def associate(self, time: float) -> None:
        self._change(WiFiState.ASSOCIATING.value, time)

    def transmit(self, time: float) -> None:
        self._change(self._tx, time, tx=True)

    def receive(self, time: float) -> None:
        self._change(self._rx, time, rx=True)

    def scan(self, time: float, scan_state: "WiFiState") -> None:
        self._change(scan_state.value, time)

    @property
    def energy(self) -> float:
        return self.power.cost

    def __str__(self) -> str:
        return f"{self.sent.cost:.10g} {self.power.cost:.10g}"
