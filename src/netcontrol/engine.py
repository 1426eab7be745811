"""Wiring of the coordinator core: store, broadcaster, services and scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .config import settings
from .models.domain import utcnow
from .persistence.documents import DocumentStore, GuardedStore, InMemoryDocumentStore
from .services.broadcast import ChangeBroadcaster
from .services.events.store import EventStore
from .services.logbook import LogBook
from .services.presence import PresenceService
from .services.scheduler import IntervalScheduler

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    documents: DocumentStore
    broadcaster: ChangeBroadcaster
    events: EventStore
    presence: PresenceService
    logbook: LogBook
    scheduler: IntervalScheduler
    run_scheduler: bool = True

    def start(self) -> None:
        self.scheduler.rehydrate()
        if self.run_scheduler:
            self.scheduler.run()

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        if isinstance(self.documents, GuardedStore):
            self.documents.close()


def default_document_store() -> DocumentStore:
    """Supabase when configured, otherwise a process-local store."""
    if settings.supabase_url and settings.supabase_key:
        from .persistence.supabase_store import SupabaseDocumentStore

        inner: DocumentStore = SupabaseDocumentStore()
    else:
        logger.warning("Supabase not configured - event state is kept in memory only")
        inner = InMemoryDocumentStore()
    return GuardedStore(inner, timeout=settings.store_timeout_seconds, max_workers=settings.store_max_workers)


def build_engine(
    documents: Optional[DocumentStore] = None,
    *,
    clock: Callable = utcnow,
    run_scheduler: Optional[bool] = None,
) -> Engine:
    documents = documents if documents is not None else default_document_store()
    broadcaster = ChangeBroadcaster()
    scheduler = IntervalScheduler(documents, broadcaster, clock=clock, tick_seconds=settings.scheduler_tick_seconds)
    events = EventStore(
        documents,
        broadcaster,
        scheduler=scheduler,
        clock=clock,
        default_check_in_interval=settings.default_check_in_interval,
        default_welfare_check_interval=settings.default_welfare_check_interval,
        reschedule_on_interval_change=settings.reschedule_on_interval_change,
    )
    logbook = LogBook(documents, broadcaster, clock=clock)
    presence = PresenceService(events, documents, broadcaster, logbook, clock=clock)
    return Engine(
        documents=documents,
        broadcaster=broadcaster,
        events=events,
        presence=presence,
        logbook=logbook,
        scheduler=scheduler,
        run_scheduler=settings.scheduler_enabled if run_scheduler is None else run_scheduler,
    )
