"""
Event System Module

Ledger event types and a publish/subscribe dispatcher for external
observers. Delivery is best-effort: a failing handler is logged and never
affects the ledger operation that produced the event.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional, Any
import logging
from threading import RLock


class LedgerEventType(Enum):
    """Event records emitted by the ledger"""

    # Deposit events
    DEPOSITED = "deposit.created"
    WITHDRAWN = "deposit.withdrawn"
    REINVESTED = "deposit.reinvested"

    # Loan events
    VALIDITY_CHECKED = "loan.validity_checked"
    LOAN_TAKEN = "loan.taken"
    LOAN_REPAID = "loan.repaid"
    LOAN_CLOSED = "loan.closed"

    # Reporting events
    START_TIME_REPORTED = "report.start_time"
    MATURITY_REPORTED = "report.maturity"


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[LedgerEventType, List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._lock = RLock()
        self.logger = logging.getLogger("savings_ledger.events")

    def subscribe(self, event_type: LedgerEventType, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {_handler_name(handler)}")

    def unsubscribe(self, event_type: LedgerEventType, handler: Callable) -> None:
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: Any) -> None:
        """
        Deliver an event to its subscribers

        Args:
            event: Any object with an ``event_type`` attribute, normally a
                LedgerEvent from the event log
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            handlers.extend(self._global_handlers)

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Log but don't break the ledger operation
                self.logger.error(f"Error in event handler {_handler_name(handler)} for {event.event_type.value}: {e}")

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[LedgerEventType] = None) -> int:
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))
