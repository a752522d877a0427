from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import pandas as pd

from .errors import ConfigError
from .medium import Observation
from .policies import InteractionTrace

logger = logging.getLogger(__name__)

DEFAULT_TIMESTEP = 60


# ------------------------------ Samples ------------------------------


@dataclass(frozen=True)
class Sample:
    """One trace line: what was visible at `time`."""
    time: int
    wifi: Tuple[Observation, ...] = ()
    cell: Tuple[Observation, ...] = ()


def _take_observations(tokens: List[str], pos: int) -> Tuple[Tuple[Observation, ...], int]:
    n = int(tokens[pos])
    if n < 0:
        raise ValueError(f"negative count {n}")
    pos += 1
    out: List[Observation] = []
    for _ in range(n):
        if pos + 1 >= len(tokens):
            raise ValueError("truncated observation list")
        out.append((tokens[pos], int(tokens[pos + 1])))
        pos += 2
    return tuple(out), pos


def parse_line(line: str, timestep: int) -> Optional[Sample]:
    """Parse `time n_wifi (id sig)*n n_cell (id sig)*m`.

    Returns None for comments (`#`) and bogus lines (fewer than 3 tokens).
    The recorded time is a sample index and is scaled by `timestep`. A
    missing cell section is read as "no cells".
    """
    tokens = line.split()
    if len(tokens) < 3 or tokens[0].startswith("#"):
        return None
    t = int(tokens[0]) * int(timestep)
    wifi, pos = _take_observations(tokens, 1)
    cell: Tuple[Observation, ...] = ()
    if pos < len(tokens):
        cell, _ = _take_observations(tokens, pos)
    return Sample(t, wifi, cell)


# ------------------------------ Dataset ------------------------------


class TraceDataset:
    """An ordered set of `Sample`s recorded every `timestep` time units."""

    def __init__(self, samples: Iterable[Sample], timestep: int = DEFAULT_TIMESTEP,
                 *, source: str = "NULL") -> None:
        if int(timestep) <= 0:
            raise ConfigError(f"timestep must be > 0 (got {timestep}).")
        self.timestep = int(timestep)
        self.source = source
        self.samples: List[Sample] = sorted(samples, key=lambda s: s.time)
        if not self.samples:
            raise ConfigError(f"{source}: trace has no samples.")
        self.start_time = self.samples[0].time
        self.end_time = self.samples[-1].time

    @classmethod
    def parse(cls, lines: Iterable[str], timestep: int = DEFAULT_TIMESTEP,
              *, source: str = "NULL") -> "TraceDataset":
        samples: List[Sample] = []
        for lineno, line in enumerate(lines, start=1):
            try:
                s = parse_line(line, timestep)
            except ValueError as exc:
                logger.warning("%s:%d: skipping malformed line (%s): %r", source, lineno, exc, line.rstrip())
                continue
            if s is not None:
                samples.append(s)
        return cls(samples, timestep, source=source)

    @classmethod
    def from_file(cls, path: Union[str, Path], timestep: int = DEFAULT_TIMESTEP) -> "TraceDataset":
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            ds = cls.parse(f, timestep, source=str(path))
        logger.info("loaded %d samples from %s (%s..%s)", len(ds), path, ds.start_time, ds.end_time)
        return ds

    def wifi_samples(self) -> List[Tuple[int, Tuple[Observation, ...]]]:
        return [(s.time, s.wifi) for s in self.samples]

    def cell_samples(self) -> List[Tuple[int, Tuple[Observation, ...]]]:
        return [(s.time, s.cell) for s in self.samples]

    def __len__(self) -> int:
        return len(self.samples)

    def to_frame(self) -> pd.DataFrame:
        """Per-sample counts, one row per trace line."""
        return pd.DataFrame(
            {
                "time": [s.time for s in self.samples],
                "n_wifi": [len(s.wifi) for s in self.samples],
                "n_cell": [len(s.cell) for s in self.samples],
            }
        )


# ------------------------------ Interactions ------------------------------


def parse_interactions(lines: Iterable[str], *, source: str = "NULL") -> InteractionTrace:
    """Read `time on|off` lines and keep the "on" times."""
    on_times: List[float] = []
    for lineno, line in enumerate(lines, start=1):
        tokens = line.split()
        if len(tokens) < 2:
            continue
        try:
            t = float(int(tokens[0]))
        except ValueError:
            logger.warning("%s:%d: bad timestamp %r", source, lineno, tokens[0])
            continue
        state = tokens[1].lower()
        if state == "on":
            on_times.append(t)
        elif state != "off":
            logger.warning("%s:%d: unknown interaction state %r", source, lineno, tokens[1])
    return InteractionTrace(tuple(on_times))


def load_interactions(path: Union[str, Path]) -> InteractionTrace:
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        trace = parse_interactions(f, source=str(path))
    logger.info("loaded %d user interactions from %s", len(trace), path)
    return trace
