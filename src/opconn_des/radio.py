from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .commands import ASSOCIATED_STATES, CellState, Interface, Status, WiFiState
from .errors import AssociationError, ConfigError, RadioError
from .medium import Medium, ObservationSet
from .profile import Profile, RadioProfile

logger = logging.getLogger(__name__)


# Supported WiFi data rates (rate units per time unit).
SUPPORTED_RATES: Tuple[int, ...] = (6144, 9216, 12288, 18432, 24576, 36864, 49152, 55296)
DEFAULT_SEND_RATE = 12288
DEFAULT_RECV_RATE = 9216


def resolve_rate(rate: int, default: int, *, what: str = "rate") -> int:
    """Return `rate` if supported, else `default` (with a warning)."""
    if int(rate) in SUPPORTED_RATES:
        return int(rate)
    logger.warning("%s %s is not supported; falling back to %s", what, rate, default)
    return int(default)


# ------------------------------ Config ------------------------------


@dataclass(frozen=True)
class RadioConfig:
    """Power model and timings of a WiFi radio.

    Running costs are per time unit spent in a state; transition costs are
    charged once. Durations are in trace time units.
    """
    disc_run: float = 400.0
    con_run: float = 500.0
    discscan_run: float = 1200.0
    conscan_run: float = 1200.0
    tx_run: float = 1500.0
    rx_run: float = 1200.0

    off_to_disc: float = 100.0
    disc_to_off: float = 50.0
    disc_to_con: float = 300.0
    con_to_disc: float = 50.0

    conscan_time: float = 1.0
    discscan_time: float = 1.0
    association_time: float = 1.0

    send_rate: int = DEFAULT_SEND_RATE
    recv_rate: int = DEFAULT_RECV_RATE

    def validate(self) -> None:
        for key in ("disc_run", "con_run", "discscan_run", "conscan_run", "tx_run", "rx_run",
                    "off_to_disc", "disc_to_off", "disc_to_con", "con_to_disc"):
            if float(getattr(self, key)) < 0:
                raise ConfigError(f"{key} must be >= 0.")
        for key in ("conscan_time", "discscan_time"):
            if float(getattr(self, key)) <= 0:
                raise ConfigError(f"{key} must be > 0.")
        if float(self.association_time) < 0:
            raise ConfigError("association_time must be >= 0.")

    @property
    def fixed_costs(self) -> float:
        """Energy of one full off -> connected -> off cycle."""
        return float(self.off_to_disc + self.disc_to_con + self.con_to_disc + self.disc_to_off)


# ------------------------------ Base ------------------------------


class _SteppingRadio:
    """Shared time-advance logic.

    Time moves in whole medium samples. Between two samples the environment
    is unchanged, so crossing no sample boundary never changes state.
    Subclasses decide what happens at each boundary in `_on_sample()`.
    """

    interface: Interface

    def __init__(self, name: str, medium: Medium) -> None:
        self.name = name
        self.medium = medium
        self.now: Optional[float] = None
        self.exhausted = False

    def _idle(self) -> bool:
        """True when the current state does not depend on the medium."""
        raise NotImplementedError

    def _on_sample(self) -> None:
        raise NotImplementedError

    def step(self, to_time: float) -> bool:
        """Advance to `to_time`, applying every sample boundary on the way.

        Returns False (without raising) when `to_time` lies beyond the
        medium; the caller should treat the simulation as exhausted.
        A connected radio whose AP disappears at a boundary disconnects on
        its own (see `lost_links`).
        """
        if self.now is None:
            raise RadioError(f"{self.name}: radio has not been initialized.")
        to_time = float(to_time)
        if not self.medium.has_time(to_time):
            logger.debug("%s: medium does not have time %s", self.name, to_time)
            return False
        if to_time <= self.now:
            return True

        if self._idle():
            self.now = to_time
            return True

        m = self.medium
        if m.index_of(to_time) < m.index_of(self.now) + m.timestep:
            self.now = to_time

        while self.now < m.index_of(to_time):
            if not self._step_one():
                return False
        if self.now < to_time:
            self.now = to_time
        return True

    def _step_one(self) -> bool:
        """Move to the next sample boundary; False past the medium's end."""
        m = self.medium
        nxt = float(m.index_of(self.now) + m.timestep)
        if not m.has_time(nxt):
            return False
        self.now = nxt
        if not self._idle():
            self._on_sample()
        return True

    def _exhaust(self) -> None:
        """Run out the rest of the medium after a step that went past it.

        `now` ends at the medium's last time, so replies sent from here fall
        at or after the end of any run on this medium.
        """
        end = float(self.medium.end_time)
        logger.warning("%s: reached the end of the medium at %s; results are not reliable past it",
                       self.name, self.now)
        if self.now < end:
            self.step(end)
        self.now = end
        self.exhausted = True


# ------------------------------ WiFi ------------------------------


class WiFiRadio(_SteppingRadio):
    """WiFi network interface driven by scheduler commands.

    Invariants:
      - `now` never decreases
      - `ap_id` is set iff the state is one of ASSOCIATED_STATES
    """

    interface = Interface.WIFI

    def __init__(self, name: str, medium: Medium, config: Optional[RadioConfig] = None) -> None:
        super().__init__(name, medium)
        self.config = config or RadioConfig()
        self.config.validate()
        self.state = WiFiState.OFF
        self.ap_id: Optional[str] = None
        self.profile = RadioProfile(f"WiFi NIC {name}", self.config)
        self.tx_rate = resolve_rate(self.config.send_rate, DEFAULT_SEND_RATE, what=f"{name}: send rate")
        self.rx_rate = resolve_rate(self.config.recv_rate, DEFAULT_RECV_RATE, what=f"{name}: receive rate")
        self._scan_time: Dict[WiFiState, float] = {
            WiFiState.SCANNING_CONNECTED: float(self.config.conscan_time),
            WiFiState.SCANNING_DISCONNECTED: float(self.config.discscan_time),
        }
        self.lost_links: List[Tuple[float, str]] = []
        self.scans = 0
        self.associations = 0
        self.failed_associations = 0

    def initialize(self, start_time: float) -> None:
        if not self.medium.has_time(start_time):
            raise RadioError(f"{self.name}: {start_time} is not available in the underlying medium")
        self.now = float(start_time)
        self.profile.initialize(self.now)

    @property
    def fixed_costs(self) -> float:
        return self.config.fixed_costs

    def check_state(self) -> Status:
        ap = self.ap_id if self.state in ASSOCIATED_STATES else None
        return Status(Interface.WIFI, self.state, ap_id=ap)

    # --------------------------- stepping ---------------------------

    def _idle(self) -> bool:
        return self.state not in ASSOCIATED_STATES

    def _on_sample(self) -> None:
        if not self.medium.check_availability(self.now, self.ap_id):
            self._lose_link()

    def _lose_link(self) -> None:
        logger.info("%s: lost %s at %s", self.name, self.ap_id, self.now)
        self.lost_links.append((float(self.now), str(self.ap_id)))
        self.profile.disconnect(self.now)
        self.state = WiFiState.DISCONNECTED
        self.ap_id = None

    # --------------------------- commands ---------------------------

    def turn_on(self) -> float:
        if self.state is not WiFiState.OFF:
            return self.now
        self.profile.turn_on(self.now)
        self.state = WiFiState.DISCONNECTED
        self.ap_id = None
        logger.info("%s: enabled at %s", self.name, self.now)
        return self.now

    def turn_off(self) -> float:
        if self.state is WiFiState.OFF:
            return self.now
        self.profile.turn_off(self.now)
        self.state = WiFiState.OFF
        self.ap_id = None
        logger.info("%s: disabled at %s", self.name, self.now)
        return self.now

    def associate(self, ap_id: str) -> float:
        """Associate with `ap_id` after the association setup time.

        Raises AssociationError (leaving the radio DISCONNECTED) if the AP
        is not visible once the setup time has elapsed.
        """
        if self.state is WiFiState.OFF:
            self.turn_on()
        if self.ap_id is not None and self.ap_id == ap_id:
            logger.debug("%s: already connected to %s", self.name, ap_id)
            return self.now
        if self.ap_id is not None:
            self.disassociate()

        self.profile.associate(self.now)
        self.state = WiFiState.ASSOCIATING
        if not self.step(self.now + self.config.association_time):
            self._exhaust()

        if not (self.medium.has_time(self.now) and self.medium.check_availability(self.now, ap_id)):
            logger.info("%s: associating to %s failed at %s", self.name, ap_id, self.now)
            self.profile.disconnect(self.now)
            self.state = WiFiState.DISCONNECTED
            self.failed_associations += 1
            raise AssociationError(f"{self.name}: association with {ap_id} failed at {self.now}")

        self.profile.connect(self.now)
        self.state = WiFiState.CONNECTED
        self.ap_id = ap_id
        self.associations += 1
        logger.info("%s: associated with %s at %s", self.name, ap_id, self.now)
        return self.now

    def disassociate(self) -> float:
        if self.ap_id is None:
            logger.debug("%s: already disconnected", self.name)
            return self.now
        logger.info("%s: disassociating from %s", self.name, self.ap_id)
        self.profile.disconnect(self.now)
        self.ap_id = None
        self.state = WiFiState.DISCONNECTED
        return self.now

    def _hold(self, state: WiFiState, until: float) -> float:
        """Stay in `state` sample by sample until `until` or link loss."""
        if until == 0:
            until = math.inf
        while self.state is state and self.now < until:
            if not self._step_one():
                self._exhaust()
                break
        if self.state is state:
            self.profile.connect(self.now)
            self.state = WiFiState.CONNECTED
        return self.now

    def transmit(self, until: float) -> float:
        if self.state is not WiFiState.CONNECTED:
            logger.debug("%s: transmission did not start (state %s)", self.name, self.state.value)
            return self.now
        self.profile.transmit(self.now)
        self.state = WiFiState.TRANSMITTING
        logger.info("%s: transmission started at %s", self.name, self.now)
        self._hold(WiFiState.TRANSMITTING, float(until))
        logger.info("%s: transmission ended at %s", self.name, self.now)
        return self.now

    def receive(self, until: float) -> float:
        if self.state is not WiFiState.CONNECTED:
            logger.debug("%s: reception did not start (state %s)", self.name, self.state.value)
            return self.now
        self.profile.receive(self.now)
        self.state = WiFiState.RECEIVING
        return self._hold(WiFiState.RECEIVING, float(until))

    def scan(self) -> ObservationSet:
        """Scan and return what is visible.

        The radio passes through the matching scanning state for the scan
        duration and then returns to CONNECTED/DISCONNECTED. An empty set
        is returned when the radio cannot scan or nothing was recorded.
        """
        if self.state is WiFiState.CONNECTED:
            kind = WiFiState.SCANNING_CONNECTED
        elif self.state is WiFiState.DISCONNECTED:
            kind = WiFiState.SCANNING_DISCONNECTED
        else:
            logger.debug("%s: cannot scan in state %s", self.name, self.state.value)
            return frozenset()

        self.profile.scan(self.now, kind)
        self.state = kind
        self.scans += 1
        logger.info("%s: scanning at %s", self.name, self.now)
        if not self.step(self.now + self._scan_time[kind]):
            self._exhaust()
        observed = self.medium.scan(self.now) if self.medium.has_time(self.now) else None

        if self.state is WiFiState.SCANNING_CONNECTED:
            self.profile.connect(self.now)
            self.state = WiFiState.CONNECTED
        elif self.state is WiFiState.SCANNING_DISCONNECTED:
            self.profile.disconnect(self.now)
            self.state = WiFiState.DISCONNECTED

        logger.debug("%s: scan returned %s", self.name, observed)
        return observed if observed is not None else frozenset()

    def nop(self) -> float:
        if not self._step_one():
            self._exhaust()
        return self.now

    def summary(self, until: Optional[float] = None) -> Dict[str, float]:
        """Totals, with the current state charged up to `until` if later than `now`."""
        t = float(self.now) if self.now is not None else 0.0
        if until is not None:
            t = max(t, float(until))
        return {
            "energy": self.profile.power.snapshot(t),
            "sent": self.profile.sent.snapshot(t),
            "received": self.profile.received.snapshot(t),
            "time": t,
            "scans": self.scans,
            "associations": self.associations,
            "failed_associations": self.failed_associations,
            "lost_links": len(self.lost_links),
        }

    def __str__(self) -> str:
        return str(self.profile)


# ------------------------------ Cellular ------------------------------


class CellRadio(_SteppingRadio):
    """Cellular interface: only coverage and cell-id scans matter.

    Stepping flips CONNECTED/DISCONNECTED with coverage. Scans are
    instantaneous and charged a fixed `scan_cost`.
    """

    interface = Interface.CELL

    def __init__(self, name: str, medium: Medium, *, idle_run: float = 0.0, scan_cost: float = 0.0) -> None:
        super().__init__(name, medium)
        self.state = CellState.DISCONNECTED
        self.profile = Profile(f"GSM NIC {name} Power Profile", "Joule")
        self.profile.register_state(CellState.OFF.value, 0.0)
        self.profile.register_state(CellState.DISCONNECTED.value, idle_run)
        self.profile.register_state(CellState.CONNECTED.value, idle_run)
        self.profile.register_state(CellState.SCANNING.value, 0.0, scan_cost)
        self.scans = 0

    def initialize(self, start_time: float) -> None:
        if not self.medium.has_time(start_time):
            raise RadioError(f"{self.name}: {start_time} is not available in the underlying medium")
        self.now = float(start_time)
        self.profile.initialize(self.state.value, self.now)

    def check_state(self) -> Status:
        return Status(Interface.CELL, self.state)

    def _idle(self) -> bool:
        return self.state is CellState.OFF

    def _on_sample(self) -> None:
        covered = self.medium.check_availability(self.now)
        if self.state is CellState.DISCONNECTED and covered:
            logger.info("%s: found coverage at %s", self.name, self.now)
            self._set(CellState.CONNECTED)
        elif self.state is CellState.CONNECTED and not covered:
            logger.info("%s: lost coverage at %s", self.name, self.now)
            self._set(CellState.DISCONNECTED)

    def _set(self, state: CellState) -> None:
        self.profile.change_state(state.value, self.now)
        self.state = state

    def turn_on(self) -> float:
        if self.state is not CellState.OFF:
            return self.now
        covered = self.medium.check_availability(self.now)
        self._set(CellState.CONNECTED if covered else CellState.DISCONNECTED)
        logger.info("%s: enabled at %s", self.name, self.now)
        return self.now

    def turn_off(self) -> float:
        if self.state is not CellState.OFF:
            self._set(CellState.OFF)
            logger.info("%s: disabled at %s", self.name, self.now)
        return self.now

    def associate(self, ap_id: str) -> float:
        logger.debug("%s: associate() has no effect on a cellular radio", self.name)
        return self.now

    def disassociate(self) -> float:
        if self.state is not CellState.OFF:
            self._set(CellState.DISCONNECTED)
        return self.now

    def transmit(self, until: float) -> float:
        logger.debug("%s: transmit() is not supported; stepping to %s", self.name, until)
        self.step(until)
        return self.now

    def scan(self) -> ObservationSet:
        if self.state is CellState.OFF:
            logger.debug("%s: is off, cannot scan", self.name)
            return frozenset()
        prior = self.state
        self._set(CellState.SCANNING)
        self._set(prior)
        self.scans += 1
        observed = self.medium.scan(self.now)
        logger.debug("%s: scan returned %s", self.name, observed)
        return observed if observed is not None else frozenset()

    def nop(self) -> float:
        if not self._step_one():
            self._exhaust()
        return self.now

    def summary(self, until: Optional[float] = None) -> Dict[str, float]:
        t = float(self.now) if self.now is not None else 0.0
        if until is not None:
            t = max(t, float(until))
        return {"energy": self.profile.snapshot(t), "time": t, "scans": self.scans}
