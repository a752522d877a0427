from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .errors import ConfigError
from .radio import RadioConfig

logger = logging.getLogger(__name__)

SCHEDULER_KINDS = ("DUMB", "EB", "STATIC", "USERSTATIC", "GSMCACHE", "OPTIMAL", "STEPOPTIMAL")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


# ------------------------------ Configs ------------------------------


@dataclass(frozen=True)
class SchedulerConfig:
    kind: str = "DUMB"
    goal: float = 0.0                 # 0 = unbounded
    energy_sensitivity: float = 1.0
    delay_sensitivity: float = 0.0
    interval: float = 60.0            # STATIC/USERSTATIC/GSMCACHE rescan interval
    max_backoff: float = 64.0         # EB cap
    randomize: bool = False           # STATIC: draw the interval from [interval/2, interval]
    seed: int = 42
    bitrate: Optional[float] = None   # defaults to the radio's send rate

    def validate(self) -> None:
        if self.kind.upper() not in SCHEDULER_KINDS:
            raise ConfigError(f"Unknown scheduler kind '{self.kind}' (expected one of {SCHEDULER_KINDS}).")
        if self.goal < 0:
            raise ConfigError("goal must be >= 0.")
        if self.energy_sensitivity < 0 or self.delay_sensitivity < 0:
            raise ConfigError("sensitivities must be nonnegative.")
        if self.interval <= 0:
            raise ConfigError("interval must be > 0.")
        if self.max_backoff < 1:
            raise ConfigError("max_backoff must be >= 1.")
        if self.bitrate is not None and self.bitrate <= 0:
            raise ConfigError("bitrate must be > 0.")


@dataclass(frozen=True)
class ScenarioConfig:
    run_name: str
    trace: Path
    timestep: int = 60
    start_time: Optional[int] = None   # defaults to the first sample
    end_time: Optional[int] = None     # defaults to the last sample
    interactions: Optional[Path] = None
    optimistic_medium: bool = True
    radio: RadioConfig = field(default_factory=RadioConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    policies: Tuple[str, ...] = ()     # compared in one run; empty = scheduler.kind only
    log_level: str = "INFO"

    def validate(self) -> None:
        if self.timestep <= 0:
            raise ConfigError("timestep must be > 0.")
        if self.start_time is not None and self.end_time is not None and self.end_time <= self.start_time:
            raise ConfigError("end_time must be after start_time.")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {LOG_LEVELS}.")
        for p in self.policies:
            if p.upper() not in SCHEDULER_KINDS:
                raise ConfigError(f"Unknown policy '{p}' in policies.")
        if any(p.upper() == "USERSTATIC" for p in self.policy_kinds()) and self.interactions is None:
            logger.warning("USERSTATIC without an interaction trace behaves like STATIC")
        self.radio.validate()
        self.scheduler.validate()

    def policy_kinds(self) -> Tuple[str, ...]:
        return tuple(p.upper() for p in self.policies) or (self.scheduler.kind.upper(),)

    def scheduler_for(self, kind: str) -> SchedulerConfig:
        return dataclasses.replace(self.scheduler, kind=kind.upper())


# ------------------------------ Loading ------------------------------


def _section(raw: Dict[str, Any], key: str, cls) -> Dict[str, Any]:
    sec = raw.get(key) or {}
    if not isinstance(sec, dict):
        raise ConfigError(f"'{key}' must be a mapping.")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(sec) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{key}': {unknown}")
    return sec


def scenario_from_dict(raw: Dict[str, Any], base_dir: Union[str, Path] = ".") -> ScenarioConfig:
    """Build a validated `ScenarioConfig`; relative paths resolve against `base_dir`."""
    if not isinstance(raw, dict):
        raise ConfigError("Scenario file must contain a mapping.")
    if "trace" not in raw:
        raise ConfigError("Scenario is missing 'trace'.")
    base_dir = Path(base_dir)

    def _path(p: Optional[str]) -> Optional[Path]:
        if p is None:
            return None
        p = Path(p)
        return p if p.is_absolute() else (base_dir / p)

    radio = RadioConfig(**_section(raw, "radio", RadioConfig))
    sched = SchedulerConfig(**_section(raw, "scheduler", SchedulerConfig))

    cfg = ScenarioConfig(
        run_name=str(raw.get("run_name", "run")),
        trace=_path(str(raw["trace"])),
        timestep=int(raw.get("timestep", 60)),
        start_time=None if raw.get("start_time") is None else int(raw["start_time"]),
        end_time=None if raw.get("end_time") is None else int(raw["end_time"]),
        interactions=_path(raw.get("interactions")),
        optimistic_medium=bool(raw.get("optimistic_medium", True)),
        radio=radio,
        scheduler=sched,
        policies=tuple(str(p) for p in (raw.get("policies") or ())),
        log_level=str(raw.get("log_level", "INFO")).upper(),
    )
    cfg.validate()
    return cfg


def load_scenario(path: Union[str, Path]) -> ScenarioConfig:
    path = Path(path)
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    raw = raw or {}
    if isinstance(raw, dict):
        raw.setdefault("run_name", path.stem)
    return scenario_from_dict(raw, base_dir=path.parent)
