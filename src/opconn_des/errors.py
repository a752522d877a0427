from __future__ import annotations


class SimulationError(Exception):
    """Base class for every failure raised by the simulator core."""


class EventQueueError(SimulationError):
    """Event enqueued into the past/after the end, or a handler failed."""


class MediumError(SimulationError):
    """A medium was asked about an id that is not observable."""


class RadioError(SimulationError):
    """A radio was driven outside its medium or in an invalid state."""


class AssociationError(RadioError):
    """The association target was not available after the setup time."""


class ProfileError(SimulationError):
    """Profile contract violation (unregistered state, time travel, init)."""


class SchedulerError(SimulationError):
    """A scheduler received a malformed context."""


class ConfigError(ValueError):
    """Invalid scenario or component configuration."""
