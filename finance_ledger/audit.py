"""
Audit Trail Module

Append-only record of every ledger state change. Events form a SHA-256 hash
chain: each event stores the hash of its predecessor and a hash over its own
content, so editing, removing or reordering stored events is detectable with
verify_integrity().

The chain head (last sequence number and hash) lives in its own single-row
table and is advanced in the same unit of work as the event it describes.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    BALANCE_OVERRIDDEN = "balance_overridden"
    PASSWORD_CHANGED = "password_changed"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    TRANSFER_POSTED = "transfer_posted"
    TRANSFER_FAILED = "transfer_failed"
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_TYPE_CREATED = "expense_type_created"


def _jsonable(value: Any) -> Any:
    """Metadata value in a stable JSON form, so hashes survive a storage round trip"""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (Decimal, datetime)):
        return value.isoformat() if isinstance(value, datetime) else str(value)
    if isinstance(value, Enum):
        return value.value
    return value


# Fields excluded from the content hash
_UNHASHED = ("current_hash", "updated_at")


@dataclass
class AuditEvent(StorageRecord):
    event_type: AuditEventType
    entity_type: str  # account, transaction, expense, expense_type
    entity_id: str
    sequence: int
    previous_hash: str
    current_hash: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None  # email of the acting account, if any

    def __post_init__(self):
        self.metadata = _jsonable(self.metadata or {})

    def calculate_hash(self) -> str:
        content = {k: v for k, v in self.to_dict().items() if k not in _UNHASHED}
        canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            event_type=AuditEventType(data["event_type"]),
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            sequence=data["sequence"],
            previous_hash=data["previous_hash"],
            current_hash=data["current_hash"],
            metadata=data.get("metadata") or {},
            user_id=data.get("user_id")
        )


class AuditTrail:
    """
    Hash-chained audit log over a storage backend
    """

    HEAD_ID = "head"

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self.head_table = f"{table_name}_head"

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Joins the caller's unit of work when there is one, so an event logged
        by a failed operation disappears together with that operation.

        Args:
            event_type: What happened
            entity_type: Kind of record affected
            entity_id: Key of the record affected
            metadata: Event details; Decimal and datetime values are stringified
            user_id: Email of the account that initiated the action

        Returns:
            The stored AuditEvent
        """
        with self.storage.atomic():
            head = self.storage.load_for_update(self.head_table, self.HEAD_ID) or {
                "sequence": 0, "hash": ""
            }
            now = datetime.now(timezone.utc)

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                sequence=head["sequence"] + 1,
                previous_hash=head["hash"],
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()

            self.storage.insert(self.table_name, event.id, event.to_dict())
            self.storage.save(self.head_table, self.HEAD_ID,
                              {"sequence": event.sequence, "hash": event.current_hash})
        return event

    def _events(self, records: List[Dict[str, Any]]) -> List[AuditEvent]:
        return sorted((AuditEvent.from_dict(r) for r in records), key=lambda e: e.sequence)

    def get_all_events(self) -> List[AuditEvent]:
        """Every event in chain order"""
        return self._events(self.storage.load_all(self.table_name))

    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Events about one record in chain order; limit keeps the latest N"""
        events = self._events(self.storage.find(
            self.table_name, {"entity_type": entity_type, "entity_id": entity_id}
        ))
        return events[-limit:] if limit else events

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return self._events(self.storage.find(self.table_name, {"event_type": event_type.value}))

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Walk the chain and report every broken link

        Returns:
            ``valid`` flag, ``total_events``, ``hash_errors`` (events whose
            content no longer matches their hash) and ``chain_breaks`` (events
            whose previous_hash does not match the event before them)
        """
        events = self.get_all_events()
        hash_errors = []
        chain_breaks = []

        expected_previous = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                hash_errors.append({
                    "event_id": event.id,
                    "position": position,
                    "expected_hash": event.calculate_hash(),
                    "actual_hash": event.current_hash
                })
            if event.previous_hash != expected_previous:
                chain_breaks.append({
                    "event_id": event.id,
                    "position": position,
                    "expected_previous_hash": expected_previous,
                    "actual_previous_hash": event.previous_hash
                })
            expected_previous = event.current_hash

        return {
            "valid": not hash_errors and not chain_breaks,
            "total_events": len(events),
            "hash_errors": hash_errors,
            "chain_breaks": chain_breaks
        }
