from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Protocol, Tuple

from .errors import EventQueueError

logger = logging.getLogger(__name__)

ActorRef = str


class EventKind(str, Enum):
    STATUS = "status"
    COMMAND = "command"
    DOMAIN = "domain"


@dataclass(frozen=True)
class Event:
    """A timestamped message between two actors.

    `source` and `destination` are actor names registered with the queue.
    `payload` is interpreted by the destination (a command or a status).
    """
    time: float
    kind: EventKind
    source: ActorRef
    destination: ActorRef
    payload: Any = None

    def describe(self) -> str:
        return (
            f"Event[time={self.time}, kind={self.kind.value}, "
            f"from={self.source}, to={self.destination}, payload={self.payload!r}]"
        )


class Actor(Protocol):
    name: str

    def handle_event(self, event: Event, queue: "EventQueue") -> None:
        ...


class EventQueue:
    """Time-ordered message bus driving the simulation.

    Events are dispatched in increasing time; equal times dispatch in the
    order they were enqueued. Handlers are the only source of new events
    once `run()` has started.
    """

    def __init__(self, end_time: float) -> None:
        self.end_time = float(end_time)
        self.now = float("-inf")
        # time of the most recently accepted event ("the past" boundary)
        self._past = float("-inf")
        self._heap: List[Tuple[float, int, Event]] = []
        self._seq = itertools.count()
        self._actors: Dict[ActorRef, Actor] = {}
        self.dispatched = 0

    # ------------------------- actor directory -------------------------

    def register(self, actor: Actor) -> None:
        if actor.name in self._actors:
            raise EventQueueError(f"Actor '{actor.name}' is already registered.")
        self._actors[actor.name] = actor

    def actor(self, name: ActorRef) -> Actor:
        try:
            return self._actors[name]
        except KeyError:
            raise EventQueueError(f"Unknown actor '{name}'.") from None

    # ------------------------------ queue ------------------------------

    def __len__(self) -> int:
        return len(self._heap)

    def empty(self) -> bool:
        return not self._heap

    def enqueue(self, event: Event) -> None:
        t = float(event.time)
        if event.destination not in self._actors:
            raise EventQueueError(f"Unknown destination in {event.describe()}")
        if t < self._past:
            raise EventQueueError(
                f"Cannot accept events in the past: it is {self._past}, "
                f"event time is {t} ({event.describe()})"
            )
        if t > self.end_time:
            raise EventQueueError(
                f"Cannot accept events after the end of simulation ({self.end_time}): {event.describe()}"
            )
        self._past = t
        heapq.heappush(self._heap, (t, next(self._seq), event))

    def run(self) -> int:
        """Dispatch events until the queue drains or reaches the end time.

        Returns the number of events dispatched by this call.
        """
        count = 0
        while self._heap and self._heap[0][0] < self.end_time:
            t, _, event = heapq.heappop(self._heap)
            self.now = t
            logger.debug("dispatch %s", event.describe())
            dest = self._actors[event.destination]
            try:
                dest.handle_event(event, self)
            except Exception as exc:
                raise EventQueueError(
                    f"Exception while {event.destination} handled {event.describe()}: {exc}"
                ) from exc
            count += 1
            self.dispatched += 1
        return count
