"""
Event Log Module

Hash-chained, append-only log of ledger event records. Records are written
inside the ledger transaction (so a rolled-back operation leaves no record)
and handed to observers only after the transaction commits. The ledger
writes to this log but never reads it back for business decisions.
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Any

from .events import EventDispatcher, LedgerEventType
from .logging_config import get_logger
from .storage import StorageInterface


@dataclass
class LedgerEvent:
    """
    Immutable ledger event record with hash chaining for tamper detection
    """
    id: str
    sequence: int
    event_type: LedgerEventType
    account: str
    timestamp: int      # Ledger time of the emitting transaction
    data: Dict[str, Any]
    previous_hash: str
    current_hash: str = ""

    def __post_init__(self):
        self.data = {k: _convert_value(v) for k, v in self.data.items()}

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash covers every field except current_hash
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'event_type': self.event_type.value,
            'account': self.account,
            'timestamp': self.timestamp,
            'data': self.data,
            'previous_hash': self.previous_hash
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sequence': self.sequence,
            'event_type': self.event_type.value,
            'account': self.account,
            'timestamp': self.timestamp,
            'data': self.data,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEvent':
        data = dict(data)
        data['event_type'] = LedgerEventType(data['event_type'])
        return cls(**data)


def _convert_value(value):
    """Convert event values to JSON-friendly types"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _convert_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_convert_value(v) for v in value]
    return value


class EventLog:
    """
    Append-only, hash-chained log of ledger events
    """

    def __init__(
        self,
        storage: StorageInterface,
        dispatcher: Optional[EventDispatcher] = None,
        table_name: str = "ledger_events",
        enabled: bool = True
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.table_name = table_name
        self.head_table = f"{table_name}_head"
        self.enabled = enabled
        self.logger = get_logger("savings_ledger.audit")
        # Per-thread queue of events awaiting commit
        self._local = threading.local()
        self._lock = threading.Lock()

    def _load_head(self) -> Dict[str, Any]:
        head = self.storage.load(self.head_table, "head")
        return head or {"sequence": 0, "last_hash": ""}

    def emit(
        self,
        event_type: LedgerEventType,
        account: str,
        timestamp: int,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[LedgerEvent]:
        """
        Append an event record

        Must be called inside the ledger transaction; the record is queued
        for observers until the transaction takes it with take_pending().

        Args:
            event_type: Kind of record
            account: Account the record belongs to
            timestamp: Ledger time of the transaction
            data: Event fields

        Returns:
            Created LedgerEvent, or None when the log is disabled
        """
        if not self.enabled:
            return None

        with self._lock:
            head = self._load_head()
            event = LedgerEvent(
                id=str(uuid.uuid4()),
                sequence=head["sequence"] + 1,
                event_type=event_type,
                account=account,
                timestamp=timestamp,
                data=data or {},
                previous_hash=head["last_hash"]
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self.storage.save(self.head_table, "head", {
                "sequence": event.sequence,
                "last_hash": event.current_hash
            })
            self._queue().append(event)
            return event

    def _queue(self) -> List[LedgerEvent]:
        queue = getattr(self._local, "pending", None)
        if queue is None:
            queue = self._local.pending = []
        return queue

    def take_pending(self) -> List[LedgerEvent]:
        """Detach the events queued by the calling thread's transaction"""
        events = self._queue()
        self._local.pending = []
        return events

    def publish(self, events: List[LedgerEvent]) -> int:
        """Hand committed events to observers; returns how many were sent"""
        if self.dispatcher is not None:
            for event in events:
                self.dispatcher.publish(event)
        return len(events)

    def publish_pending(self) -> int:
        return self.publish(self.take_pending())

    def discard_pending(self) -> None:
        """Drop the calling thread's events after a rollback"""
        events = self.take_pending()
        if events:
            self.logger.debug(f"Discarding {len(events)} events from rolled back transaction")

    def get_events(
        self,
        account: Optional[str] = None,
        event_type: Optional[LedgerEventType] = None,
        limit: Optional[int] = None
    ) -> List[LedgerEvent]:
        """
        Get logged events in sequence order

        Args:
            account: Only events for this account
            event_type: Only events of this type
            limit: Return only the most recent N events
        """
        events = [LedgerEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)

        if account is not None:
            events = [e for e in events if e.account == account]
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        if limit:
            events = events[-limit:]
        return events

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire event chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self.get_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result
