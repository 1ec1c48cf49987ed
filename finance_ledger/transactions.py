"""
Transaction Processing Module

Peer-to-peer transfers between accounts. A transfer debits the sender,
credits the receiver, records an immutable Transaction and links it from both
accounts, all inside one storage unit of work: either all three documents are
written or none are.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .accounts import AccountManager, account_from_dict, normalize_email
from .errors import InsufficientFunds, LedgerError, UnknownAccount, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger(__name__)

TRANSACTIONS_TABLE = "transactions"


@dataclass
class Transaction(StorageRecord):
    """
    Completed transfer between two accounts. Never updated or deleted.
    """
    sender_email: str
    receiver_email: str
    amount: Money
    category: str
    description: str
    date: datetime

    def involves(self, email: str) -> bool:
        return email in (self.sender_email, self.receiver_email)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "sender_email": self.sender_email,
            "receiver_email": self.receiver_email,
            "amount": self.amount.to_string(),
            "category": self.category,
            "description": self.description,
            "date": self.date.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sender_email=data['sender_email'],
            receiver_email=data['receiver_email'],
            amount=Money(Decimal(data['amount'])),
            category=data.get('category') or "",
            description=data.get('description') or "",
            date=datetime.fromisoformat(data['date'])
        )


def as_utc(value: Optional[datetime], default: datetime) -> datetime:
    """Caller-supplied timestamp in UTC; naive values are taken as UTC"""
    if value is None:
        return default
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TransactionProcessor:
    """
    Executes transfers and answers transaction history queries
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.table_name = TRANSACTIONS_TABLE

    def transfer(
        self,
        sender_email: str,
        receiver_email: str,
        amount: Money,
        category: str = "",
        description: str = "",
        date: Optional[datetime] = None
    ) -> Transaction:
        """
        Move funds from sender to receiver

        Args:
            sender_email: Account to debit
            receiver_email: Account to credit
            amount: Positive amount to move
            category: Free-text tag
            description: Free-text description
            date: Transaction timestamp, defaults to now

        Returns:
            The created Transaction

        Raises:
            ValidationError: Non-positive amount or sender equal to receiver
            UnknownAccount: Either account does not exist
            InsufficientFunds: Sender balance below amount
        """
        sender_email = normalize_email(sender_email)
        receiver_email = normalize_email(receiver_email)
        if not amount.is_positive():
            raise ValidationError("Transfer amount must be positive")
        if sender_email == receiver_email:
            raise ValidationError("Cannot transfer to the same account")

        try:
            # Balance check and both writes happen under one writer lock,
            # so concurrent transfers always see each other's debits
            with self.storage.atomic():
                sender = self._load_account(sender_email)
                receiver = self._load_account(receiver_email)
                if sender is None:
                    raise UnknownAccount(sender_email, "Sender email isn't linked to an account",
                                         status_code=400)
                if receiver is None:
                    raise UnknownAccount(receiver_email, "Receiver email isn't linked to an account",
                                         status_code=400)

                if sender.balance < amount:
                    raise InsufficientFunds()

                now = datetime.now(timezone.utc)
                transaction = Transaction(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    sender_email=sender_email,
                    receiver_email=receiver_email,
                    amount=amount,
                    category=category or "",
                    description=description or "",
                    date=as_utc(date, now)
                )

                sender.debit(amount)
                receiver.credit(amount)
                sender.link_transaction(transaction.id)
                receiver.link_transaction(transaction.id)
                sender.updated_at = receiver.updated_at = now

                self.storage.insert(self.table_name, transaction.id, transaction.to_dict())
                self.account_manager.save_account(sender)
                self.account_manager.save_account(receiver)

                self.audit_trail.log_event(
                    event_type=AuditEventType.TRANSFER_POSTED,
                    entity_type="transaction",
                    entity_id=transaction.id,
                    metadata={
                        "sender": sender_email,
                        "receiver": receiver_email,
                        "amount": amount.to_string(),
                        "sender_balance": sender.balance.to_string(),
                        "receiver_balance": receiver.balance.to_string()
                    },
                    user_id=sender_email
                )
        except LedgerError as e:
            self._record_failure(sender_email, receiver_email, amount, e.message)
            raise

        log_action(logger, "info", "Transfer posted", user_id=sender_email,
                   action="transfer", resource="transaction",
                   extra={"transaction_id": transaction.id, "receiver": receiver_email,
                          "amount": amount.to_string()})
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID"""
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def get_account_transactions(self, email: str, limit: Optional[int] = None) -> List[Transaction]:
        """
        All transactions the email sent or received, most recent first

        Works for deleted accounts too; history is keyed by email.
        """
        email = normalize_email(email)
        found: Dict[str, Transaction] = {}
        for field_name in ("sender_email", "receiver_email"):
            for data in self.storage.find(self.table_name, {field_name: email}):
                found[data['id']] = Transaction.from_dict(data)

        transactions = sorted(found.values(), key=lambda t: (t.date, t.created_at), reverse=True)
        if limit:
            transactions = transactions[:limit]
        return transactions

    def _load_account(self, email: str):
        data = self.storage.load_for_update(self.account_manager.accounts_table, email)
        return account_from_dict(data) if data else None

    def _record_failure(self, sender_email: str, receiver_email: str,
                        amount: Money, reason: str) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSFER_FAILED,
            entity_type="account",
            entity_id=sender_email,
            metadata={"receiver": receiver_email, "amount": amount.to_string(), "reason": reason},
            user_id=sender_email
        )
        log_action(logger, "warning", f"Transfer rejected: {reason}", user_id=sender_email,
                   action="transfer_failed", resource="transaction",
                   extra={"receiver": receiver_email, "amount": amount.to_string()})
