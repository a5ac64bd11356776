"""
Audit Trail Module

Append-only record of administrative account changes: creation, owner
updates, blocking and deletion. Balance changes are not audited here; the
transaction journal is their record.

Each event stores the SHA-256 digest of the event before it, so editing or
removing a stored event is detected by ``verify_chain``.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Administrative changes recorded for an account"""
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_BLOCKED = "account_blocked"
    ACCOUNT_UNBLOCKED = "account_unblocked"
    ACCOUNT_DELETED = "account_deleted"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return str(value)


@dataclass
class AuditEvent(StorageRecord):
    """
    One link of the chain. ``previous_hash`` is empty for the first event.
    """
    event_type: AuditEventType
    account_id: str
    previous_hash: str
    details: Dict[str, Any]
    current_hash: str = ""

    def digest(self) -> str:
        """SHA-256 over every stored field except the hash itself"""
        payload = self.to_dict()
        del payload['current_hash']
        canonical = json.dumps(payload, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    @property
    def is_intact(self) -> bool:
        return self.current_hash == self.digest()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            event_type=AuditEventType(data['event_type']),
            account_id=data['account_id'],
            previous_hash=data['previous_hash'],
            details=data.get('details') or {},
            current_hash=data['current_hash']
        )


@dataclass
class ChainReport:
    """Outcome of a full chain verification"""
    valid: bool
    total_events: int
    first_broken_event: Optional[str] = None


class AuditTrail:
    """
    Hash-chained audit log over a storage table
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

        self.storage.create_index(self.table_name, ["account_id"])
        self._load_head()

    def _load_head(self) -> None:
        events = self.storage.load_all(self.table_name)
        self._head_id = events[-1]['id'] if events else None
        self._head = events[-1]['current_hash'] if events else ""

    def record(self, event_type: AuditEventType, account_id: str, **details) -> AuditEvent:
        """
        Append an event for ``account_id``. Keyword arguments become the
        event details; values that are not JSON types are stored as strings.

        Joins the caller's atomic block, so the event is rolled back with it.
        """
        # Storage lock before audit lock, the same order account changes use
        with self.storage.atomic(), self._lock:
            if self._head_id and not self.storage.exists(self.table_name, self._head_id):
                self._load_head()

            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                account_id=account_id,
                previous_hash=self._head,
                details=json.loads(json.dumps(details, default=_plain))
            )
            event.current_hash = event.digest()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self._head_id = event.id
            self._head = event.current_hash
            return event

    def history(self, account_id: str) -> List[AuditEvent]:
        """Events for one account, oldest first"""
        rows = self.storage.find(self.table_name, {"account_id": account_id})
        return [AuditEvent.from_dict(row) for row in rows]

    def verify_chain(self) -> ChainReport:
        """Walk the whole chain and report the first event that does not fit"""
        events = [AuditEvent.from_dict(row) for row in self.storage.load_all(self.table_name)]

        expected_previous = ""
        for event in events:
            if not event.is_intact or event.previous_hash != expected_previous:
                return ChainReport(valid=False, total_events=len(events), first_broken_event=event.id)
            expected_previous = event.current_hash

        return ChainReport(valid=True, total_events=len(events))
