"""
Expense Logging Module

Append/query store of expenses a user records against their own email, plus
the shared lookup list of expense types.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord, DuplicateRecordError
from .audit import AuditTrail, AuditEventType
from .accounts import normalize_email
from .transactions import as_utc
from .errors import DuplicateExpenseType, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger(__name__)


@dataclass
class Expense(StorageRecord):
    user_email: str
    expense_type: str
    recipient: str
    amount: Money
    remarks: str
    date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "user_email": self.user_email,
            "expense_type": self.expense_type,
            "recipient": self.recipient,
            "amount": self.amount.to_string(),
            "remarks": self.remarks,
            "date": self.date.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Expense':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_email=data['user_email'],
            expense_type=data['expense_type'],
            recipient=data['recipient'],
            amount=Money(Decimal(data['amount'])),
            remarks=data.get('remarks') or "",
            date=datetime.fromisoformat(data['date'])
        )


@dataclass
class ExpenseType(StorageRecord):
    name: str


class ExpenseManager:
    """
    Records expenses and maintains the expense type list
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.expenses_table = "expenses"
        self.types_table = "expense_types"

    def add_expense(
        self,
        user_email: str,
        expense_type: str,
        recipient: str,
        amount: Money,
        remarks: str = "",
        date: Optional[datetime] = None
    ) -> Expense:
        """
        Record an expense

        Raises:
            ValidationError: Missing email, type or recipient, or a non-positive amount
        """
        user_email = normalize_email(user_email)
        if not expense_type or not expense_type.strip() or not recipient or not recipient.strip():
            raise ValidationError("Missing required fields")
        if not amount.is_positive():
            raise ValidationError("Expense amount must be positive")

        now = datetime.now(timezone.utc)
        expense = Expense(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_email=user_email,
            expense_type=expense_type.strip(),
            recipient=recipient.strip(),
            amount=amount,
            remarks=remarks or "",
            date=as_utc(date, now)
        )

        with self.storage.atomic():
            self.storage.insert(self.expenses_table, expense.id, expense.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_RECORDED,
                entity_type="expense",
                entity_id=expense.id,
                metadata={"expense_type": expense.expense_type, "amount": amount.to_string()},
                user_id=user_email
            )

        log_action(logger, "info", "Expense recorded", user_id=user_email,
                   action="add_expense", resource="expense")
        return expense

    def get_expenses(self, user_email: str) -> List[Expense]:
        """Expenses recorded by the user, most recent first"""
        user_email = normalize_email(user_email)
        expenses = [Expense.from_dict(data)
                    for data in self.storage.find(self.expenses_table, {"user_email": user_email})]
        expenses.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return expenses

    def list_expense_types(self) -> List[ExpenseType]:
        types = [
            ExpenseType(
                id=data['id'],
                created_at=datetime.fromisoformat(data['created_at']),
                updated_at=datetime.fromisoformat(data['updated_at']),
                name=data['name']
            )
            for data in self.storage.load_all(self.types_table)
        ]
        types.sort(key=lambda t: t.created_at)
        return types

    def add_expense_type(self, name: str) -> ExpenseType:
        """Add a new expense type; names are unique"""
        if not name or not name.strip():
            raise ValidationError("Expense type is required")
        name = name.strip()

        now = datetime.now(timezone.utc)
        expense_type = ExpenseType(id=str(uuid.uuid4()), created_at=now, updated_at=now, name=name)

        with self.storage.atomic():
            try:
                # Keyed by name so the uniqueness check is the insert itself
                self.storage.insert(self.types_table, name, expense_type.to_dict())
            except DuplicateRecordError:
                raise DuplicateExpenseType(name)

            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_TYPE_CREATED,
                entity_type="expense_type",
                entity_id=expense_type.id,
                metadata={"name": name}
            )

        return expense_type
