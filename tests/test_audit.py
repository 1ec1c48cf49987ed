"""
Tests for the hash-chained audit trail
"""

import pytest
from decimal import Decimal

from finance_ledger.storage import InMemoryStorage
from finance_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditTrail:
    """Test audit trail functionality"""

    def setup_method(self):
        """Setup test audit trail"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_event(self):
        """Test logging an audit event"""
        event = self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id="alice@example.com",
            metadata={"initial_balance": Decimal("1000.00")},
            user_id="alice@example.com"
        )

        assert event.sequence == 1
        assert event.previous_hash == ""
        assert event.current_hash == event.calculate_hash()
        assert event.metadata["initial_balance"] == "1000.00"
        assert self.audit_trail.count_events() == 1

    def test_hash_chain(self):
        """Each event links to the hash of the one before it"""
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "a@example.com")
        second = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "b@example.com")
        third = self.audit_trail.log_event(AuditEventType.TRANSFER_POSTED, "transaction", "tx-1")

        assert second.previous_hash == first.current_hash
        assert third.previous_hash == second.current_hash
        assert [e.sequence for e in self.audit_trail.get_all_events()] == [1, 2, 3]

    def test_verify_integrity_valid_chain(self):
        for i in range(5):
            self.audit_trail.log_event(AuditEventType.EXPENSE_RECORDED, "expense", f"exp-{i}")

        result = self.audit_trail.verify_integrity()

        assert result['valid']
        assert result['total_events'] == 5
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_detects_tampered_metadata(self):
        """Editing a stored event breaks its hash"""
        event = self.audit_trail.log_event(
            AuditEventType.BALANCE_OVERRIDDEN, "account", "a@example.com",
            metadata={"old_balance": "1000.00", "new_balance": "50.00"}
        )
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "account", "a@example.com")

        stored = self.storage.load("audit_events", event.id)
        stored["metadata"]["new_balance"] = "5000.00"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit_trail.verify_integrity()

        assert not result['valid']
        assert result['hash_errors'][0]['event_id'] == event.id

    def test_detects_deleted_event(self):
        """Removing an event from the middle breaks the chain"""
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "a@example.com")
        middle = self.audit_trail.log_event(AuditEventType.ACCOUNT_UPDATED, "account", "a@example.com")
        last = self.audit_trail.log_event(AuditEventType.ACCOUNT_DELETED, "account", "a@example.com")

        self.storage.delete("audit_events", middle.id)
        result = self.audit_trail.verify_integrity()

        assert not result['valid']
        assert result['chain_breaks'][0]['event_id'] == last.id

    def test_get_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "a@example.com")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "b@example.com")
        self.audit_trail.log_event(AuditEventType.PASSWORD_CHANGED, "account", "a@example.com")

        events = self.audit_trail.get_events_for_entity("account", "a@example.com")

        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.PASSWORD_CHANGED
        ]
        latest = self.audit_trail.get_events_for_entity("account", "a@example.com", limit=1)
        assert latest[0].event_type == AuditEventType.PASSWORD_CHANGED

    def test_get_events_by_type(self):
        self.audit_trail.log_event(AuditEventType.LOGIN_FAILED, "account", "a@example.com")
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "account", "a@example.com")

        failed = self.audit_trail.get_events_by_type(AuditEventType.LOGIN_FAILED)
        assert len(failed) == 1
        assert failed[0].entity_id == "a@example.com"

    def test_rolled_back_event_is_discarded(self):
        """An event logged inside a failed unit of work disappears with it"""
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "a@example.com")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.TRANSFER_POSTED, "transaction", "tx-1")
                raise RuntimeError("transfer failed")

        after = self.audit_trail.log_event(AuditEventType.TRANSFER_FAILED, "account", "a@example.com")

        assert after.sequence == 2
        assert self.audit_trail.verify_integrity()['valid']

    def test_event_round_trip(self):
        event = self.audit_trail.log_event(
            AuditEventType.TRANSFER_POSTED, "transaction", "tx-1",
            metadata={"amount": "200.00"}, user_id="a@example.com"
        )

        restored = AuditEvent.from_dict(self.storage.load("audit_events", event.id))

        assert restored.event_type == AuditEventType.TRANSFER_POSTED
        assert restored.verify_hash()
