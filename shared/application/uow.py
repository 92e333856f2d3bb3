"""
Unit of Work Pattern

Manages database transactions and dispatches domain events collected from
aggregates. Handlers run inside the same transaction as the state change
that raised the event, each in its own savepoint, so the records they write
(notification jobs, calendar changes) commit or roll back with it while a
failing handler never undoes the state change itself.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""
        pass

    @abstractmethod
    def collect_events(self, aggregate):
        """Collect events from aggregate root"""
        pass


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            booking = repository.get(reference, lock=True)
            booking.confirm_payment(event_id)
            uow.collect_events(booking)
            repository.save(booking)
        # Events are dispatched before the transaction commits
    """

    def __init__(self, message_bus=None):
        self._events: List[DomainEvent] = []
        self._transaction = None
        self._message_bus = message_bus

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        except BaseException as e:
            # Errors raised while committing must still abort the atomic block
            self._transaction.__exit__(type(e), e, e.__traceback__)
            self._transaction = None
            raise
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """Dispatch collected events while the transaction is still open"""
        events = self._events.copy()
        self._events.clear()

        if events:
            logger.debug(f"Dispatching {len(events)} events before commit")
            self._publish_events(events)

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning(f"Rolling back transaction, discarding {len(self._events)} events")
        self._events.clear()

    def collect_events(self, aggregate):
        """
        Collect events from aggregate root

        Extracts all domain events from the aggregate and
        clears them from the aggregate.
        """
        if hasattr(aggregate, 'events'):
            new_events = aggregate.events
            if new_events:
                self._events.extend(new_events)
                aggregate.clear_events()
                logger.debug(
                    f"Collected {len(new_events)} events from "
                    f"{aggregate.__class__.__name__}"
                )

    def _publish_events(self, events: List[DomainEvent]):
        bus = self._message_bus
        if bus is None:
            from shared.application.message_bus import message_bus as bus

        bus.publish_events(events)
