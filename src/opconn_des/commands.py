"""Vocabulary shared by radios and schedulers.

A scheduler never sees a radio object. It receives a `Context` built from a
radio's `Status` reply and answers with one of the command classes below.
Each command class corresponds to one target state and carries exactly the
parameters that state needs.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from .errors import SchedulerError
from .medium import Observation, ObservationSet


class Interface(str, Enum):
    WIFI = "WiFi"
    CELL = "GSM"


class WiFiState(Enum):
    OFF = "OFF"
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    SCANNING_DISCONNECTED = "DISCONNECTED_SCANNING"
    SCANNING_CONNECTED = "CONNECTED_SCANNING"
    TRANSMITTING = "DATA_TX"
    RECEIVING = "DATA_RX"
    # also reported when an association attempt failed
    ASSOCIATING = "ASSOCIATION"


class CellState(Enum):
    OFF = "OFF"
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    SCANNING = "SCANNING"


# States in which a WiFi radio holds an association id.
ASSOCIATED_STATES = frozenset({
    WiFiState.CONNECTED,
    WiFiState.SCANNING_CONNECTED,
    WiFiState.TRANSMITTING,
    WiFiState.RECEIVING,
})

RadioState = Union[WiFiState, CellState]


# ------------------------------ Commands ------------------------------


@dataclass(frozen=True)
class TurnOn:
    interface: Interface = Interface.WIFI


@dataclass(frozen=True)
class TurnOff:
    """Power the radio off and keep it parked until `until`."""
    until: float
    interface: Interface = Interface.WIFI


@dataclass(frozen=True)
class Scan:
    interface: Interface = Interface.WIFI


@dataclass(frozen=True)
class Associate:
    ap_id: str
    interface: Interface = Interface.WIFI


@dataclass(frozen=True)
class Transmit:
    """Transmit until `until`; 0 means until the link is lost."""
    until: float
    interface: Interface = Interface.WIFI


@dataclass(frozen=True)
class Nop:
    interface: Interface = Interface.WIFI


Command = Union[TurnOn, TurnOff, Scan, Associate, Transmit, Nop]


# --------------------------- Status / Context ---------------------------


@dataclass(frozen=True)
class Status:
    """A radio's reply to a command: its post-command state plus data."""
    interface: Interface
    state: RadioState
    ap_id: Optional[str] = None
    observed: Optional[ObservationSet] = None


_SCAN_STATES = frozenset({
    WiFiState.SCANNING_DISCONNECTED,
    WiFiState.SCANNING_CONNECTED,
    CellState.SCANNING,
})


@dataclass(frozen=True)
class Context:
    """What a scheduler is told at a decision point."""
    now: float
    state: RadioState
    interface: Interface = Interface.WIFI
    ap_id: Optional[str] = None
    observed: Optional[ObservationSet] = None

    @classmethod
    def from_status(cls, now: float, status: Status) -> "Context":
        return cls(
            now=float(now),
            state=status.state,
            interface=status.interface,
            ap_id=status.ap_id,
            observed=status.observed,
        )

    def validate(self) -> None:
        if self.state is None:
            raise SchedulerError(f"Malformed context (no state): {self}")
        if self.interface is Interface.WIFI and not isinstance(self.state, WiFiState):
            raise SchedulerError(f"Malformed context (not a WiFi state): {self}")
        if self.interface is Interface.CELL and not isinstance(self.state, CellState):
            raise SchedulerError(f"Malformed context (not a cellular state): {self}")
        if self.state in _SCAN_STATES and self.observed is None:
            raise SchedulerError(f"Malformed context (scan without a result): {self}")
        if self.state in ASSOCIATED_STATES and self.ap_id is None:
            raise SchedulerError(f"Malformed context (associated without an id): {self}")

    def require_observed(self) -> ObservationSet:
        if self.observed is None:
            raise SchedulerError(f"Malformed context (scan result expected): {self}")
        return self.observed


def strongest(observed: Optional[Iterable[Observation]]) -> Optional[str]:
    """Id with the greatest signal; ties go to the smallest id."""
    if not observed:
        return None
    best_id, _ = min(observed, key=lambda o: (-int(o[1]), str(o[0])))
    return best_id


def ids_of(observed: Optional[Iterable[Observation]]) -> frozenset:
    if not observed:
        return frozenset()
    return frozenset(i for i, _ in observed)
