"""Per-event recurring check-in and welfare-check prompts.

The scheduler owns one explicit table, ``event_id -> TimerPair``, mutated
only by :meth:`IntervalScheduler.start` and :meth:`IntervalScheduler.stop`.
Intervals are read once when a pair is started. Firing never changes state:
it publishes ``checkInDue`` / ``welfareCheckDue`` to the personal topic of
every operator currently ACTIVE on the event, and the operator's client
decides whether to answer.

Time only moves through :meth:`IntervalScheduler.tick`, which the driver
thread calls every ``tick_seconds``; tests call it directly with a fake clock.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Literal, Optional

from ..errors import CoordinatorError
from ..models.domain import Event, utcnow
from ..persistence.documents import EVENTS, DocumentStore
from .broadcast import ChangeBroadcaster, Delta, operator_topic
from .events.assignments import list_assignments

logger = logging.getLogger(__name__)

TimerKind = Literal["check_in", "welfare_check"]

PROMPTS: dict[str, str] = {
    "check_in": "checkInDue",
    "welfare_check": "welfareCheckDue",
}


@dataclass(slots=True)
class RecurringTimer:
    kind: TimerKind
    interval: timedelta
    next_due: datetime
    generation: int
    fired: int = 0


@dataclass(slots=True)
class TimerPair:
    event_id: str
    started_at: datetime
    check_in: RecurringTimer
    welfare_check: RecurringTimer

    def timers(self) -> tuple[RecurringTimer, RecurringTimer]:
        return (self.check_in, self.welfare_check)


class IntervalScheduler:
    def __init__(
        self,
        store: DocumentStore,
        broadcaster: ChangeBroadcaster,
        *,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.clock = clock
        self.tick_seconds = tick_seconds
        self._timers: dict[str, TimerPair] = {}
        self._lock = threading.Lock()
        self._generations = itertools.count(1)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Timer table

    def start(self, event: Event) -> TimerPair:
        """(Re)start both timers for ``event`` using its current intervals."""
        now = self.clock()
        with self._lock:
            generation = next(self._generations)
            pair = TimerPair(
                event_id=event.id,
                started_at=now,
                check_in=RecurringTimer(
                    kind="check_in",
                    interval=timedelta(minutes=event.check_in_interval),
                    next_due=now + timedelta(minutes=event.check_in_interval),
                    generation=generation,
                ),
                welfare_check=RecurringTimer(
                    kind="welfare_check",
                    interval=timedelta(minutes=event.welfare_check_interval),
                    next_due=now + timedelta(minutes=event.welfare_check_interval),
                    generation=generation,
                ),
            )
            self._timers[event.id] = pair
        logger.info(
            f"Timers started for event {event.id}: check-in every {event.check_in_interval} min, "
            f"welfare every {event.welfare_check_interval} min"
        )
        return pair

    def stop(self, event_id: str) -> bool:
        """Cancel both timers. Safe to call repeatedly or while a firing is in flight."""
        with self._lock:
            removed = self._timers.pop(event_id, None)
        if removed is not None:
            logger.info(f"Timers stopped for event {event_id}")
        return removed is not None

    def is_running(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._timers

    def timers(self) -> dict[str, TimerPair]:
        with self._lock:
            return dict(self._timers)

    def rehydrate(self) -> int:
        """Start timers for every ACTIVE event in the store, e.g. after a restart."""
        count = 0
        for document in self.store.find(EVENTS, status="ACTIVE"):
            self.start(Event.from_document(document.data, document.revision))
            count += 1
        logger.info(f"Rehydrated timers for {count} active event(s)")
        return count

    # Firing

    def tick(self, now: Optional[datetime] = None) -> list[Delta]:
        """Fire every timer that is due at ``now``.

        A timer fires at most once per tick; periods missed while the
        process was busy are coalesced into that single firing.
        """
        now = now or self.clock()
        due: list[tuple[str, RecurringTimer, datetime]] = []
        with self._lock:
            for pair in self._timers.values():
                for timer in pair.timers():
                    if timer.next_due > now:
                        continue
                    due_at = timer.next_due
                    missed = (now - timer.next_due) // timer.interval
                    timer.next_due += timer.interval * (missed + 1)
                    timer.fired += 1
                    due.append((pair.event_id, timer, due_at))

        deltas: list[Delta] = []
        for event_id, timer, due_at in due:
            deltas.extend(self._fire(event_id, timer, due_at))
        return deltas

    def _is_current(self, event_id: str, timer: RecurringTimer) -> bool:
        with self._lock:
            pair = self._timers.get(event_id)
            return pair is not None and getattr(pair, timer.kind).generation == timer.generation

    def _fire(self, event_id: str, timer: RecurringTimer, due_at: datetime) -> list[Delta]:
        if not self._is_current(event_id, timer):
            return []
        try:
            active = list_assignments(self.store, event_id, status="ACTIVE")
        except CoordinatorError as exc:
            logger.warning(f"Skipping {timer.kind} prompt for event {event_id}: {exc}")
            return []
        # stop() may have run while the store was being queried
        if not self._is_current(event_id, timer):
            return []

        prompt = PROMPTS[timer.kind]
        deltas = [
            self.broadcaster.publish(
                operator_topic(assignment.operator_id),
                prompt,
                {
                    "eventId": event_id,
                    "operatorId": assignment.operator_id,
                    "dueAt": due_at.isoformat(),
                    "intervalMinutes": int(timer.interval.total_seconds() // 60),
                },
            )
            for assignment in active
        ]
        if deltas:
            logger.debug(f"{prompt} sent to {len(deltas)} operator(s) on event {event_id}")
        return deltas

    # Driver thread

    def run(self) -> None:
        """Start the background driver thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._loop, name="interval-scheduler", daemon=True)
        self._thread.start()

    def shutdown(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stopping.wait(self.tick_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
