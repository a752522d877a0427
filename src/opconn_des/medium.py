from __future__ import annotations

import math
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, TYPE_CHECKING

from .errors import ConfigError, MediumError
from .models import Block

if TYPE_CHECKING:
    from .traces import TraceDataset


# (id, signal strength)
Observation = Tuple[str, int]
ObservationSet = FrozenSet[Observation]


class Medium:
    """Read-only, time-indexed view of which APs (or cells) were visible.

    Samples are recorded at multiples of `timestep` from `start_time`. Between
    two samples the environment is taken to be as it was at the earlier one.

    Every caller must check `has_time(t)` before any other query; the other
    methods do not validate the range.

    A slot with no recorded sample is treated as "available" when
    `optimistic` is True (the behaviour existing traces were produced with)
    and as "nothing visible" otherwise.
    """

    def __init__(
        self,
        samples: Iterable[Tuple[int, Iterable[Observation]]],
        timestep: int,
        *,
        name: str = "medium",
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        optimistic: bool = True,
    ) -> None:
        if int(timestep) <= 0:
            raise ConfigError(f"{name}: timestep must be > 0 (got {timestep}).")

        env: Dict[int, ObservationSet] = {}
        for t, observed in samples:
            env[int(t)] = frozenset((str(i), int(s)) for i, s in observed)

        if not env and (start_time is None or end_time is None):
            raise ConfigError(f"{name}: no samples and no explicit time range.")

        self.name = str(name)
        self.timestep = int(timestep)
        self.start_time = int(start_time) if start_time is not None else min(env)
        self.end_time = int(end_time) if end_time is not None else max(env)
        if self.end_time < self.start_time:
            raise ConfigError(f"{name}: end_time precedes start_time.")
        for t in env:
            if not self.start_time <= t <= self.end_time:
                raise ConfigError(f"{name}: sample at {t} lies outside [{self.start_time}, {self.end_time}].")
            if (t - self.start_time) % self.timestep:
                raise ConfigError(
                    f"{name}: sample at {t} is not on a {self.timestep}-unit boundary from {self.start_time}."
                )
        self.optimistic = bool(optimistic)
        self._env: Mapping[int, ObservationSet] = MappingProxyType(env)

    # ------------------------- constructors -------------------------

    @classmethod
    def wifi(cls, dataset: "TraceDataset", name: str = "wifi", **kwargs) -> "Medium":
        return cls(dataset.wifi_samples(), dataset.timestep, name=name,
                   start_time=dataset.start_time, end_time=dataset.end_time, **kwargs)

    @classmethod
    def cellular(cls, dataset: "TraceDataset", name: str = "cell", **kwargs) -> "Medium":
        return cls(dataset.cell_samples(), dataset.timestep, name=name,
                   start_time=dataset.start_time, end_time=dataset.end_time, **kwargs)

    # ---------------------------- queries ----------------------------

    def has_time(self, t: float) -> bool:
        return self.start_time <= float(t) <= self.end_time

    def index_of(self, t: float) -> int:
        """Latest sample boundary at or before `t`."""
        t = float(t)
        frac = math.fmod(t - self.start_time, self.timestep)
        # fmod keeps the sign of the dividend; sample slots are floored
        if frac < 0:
            frac += self.timestep
        return int(math.floor(t - frac))

    def scan(self, t: float) -> Optional[ObservationSet]:
        """Observations at the slot of `t`, or None if nothing was recorded."""
        return self._env.get(self.index_of(t))

    def check_availability(self, t: float, ap_id: Optional[str] = None) -> bool:
        observed = self.scan(t)
        if observed is None:
            return self.optimistic
        if ap_id is None:
            return len(observed) > 0
        return any(i == ap_id for i, _ in observed)

    def signal(self, ap_id: str, t: float) -> Optional[int]:
        """Recorded signal of `ap_id` at the slot of `t`.

        Raises MediumError if `ap_id` is not available there. Returns None
        when the slot has no sample and the medium is optimistic: the AP
        counts as available but no strength was recorded.
        """
        if not self.check_availability(t, ap_id):
            raise MediumError(f"{self.name}: {ap_id} is not available at time {t}")
        observed = self.scan(t)
        if observed is None:
            return None
        return next(s for i, s in observed if i == ap_id)

    def sample_times(self) -> List[int]:
        return sorted(self._env)

    def __len__(self) -> int:
        return len(self._env)

    # ------------------------- availability -------------------------

    def availability_blocks(
        self,
        start: Optional[float] = None,
        end: Optional[float] = None,
    ) -> List[Block]:
        """Maximal intervals with at least one visible id, in start order.

        Slots without a recorded sample neither open nor close a block.
        A block still open at `end` is closed at the slot of `end`.
        """
        s_time = self.index_of(self.start_time if start is None else start)
        e_time = self.index_of(self.end_time if end is None else end)

        blocks: List[Block] = []
        in_block = False
        b_start = 0
        for t in range(s_time, e_time + 1, self.timestep):
            observed = self._env.get(t)
            if observed is None:
                continue
            if not in_block and observed:
                in_block = True
                b_start = t
            elif in_block and not observed:
                in_block = False
                blocks.append(Block(b_start, t))
        if in_block and e_time > b_start:
            blocks.append(Block(b_start, e_time))
        return blocks

    def __repr__(self) -> str:
        return (
            f"Medium(name={self.name!r}, start={self.start_time}, end={self.end_time}, "
            f"timestep={self.timestep}, samples={len(self._env)})"
        )
