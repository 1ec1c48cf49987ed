"""
Tests for expense logging and expense types
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from finance_ledger.storage import InMemoryStorage
from finance_ledger.audit import AuditTrail, AuditEventType
from finance_ledger.money import Money
from finance_ledger.expenses import ExpenseManager
from finance_ledger.errors import DuplicateExpenseType, ValidationError


class TestExpenseManager:
    """Test expense recording and queries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.expense_manager = ExpenseManager(self.storage, self.audit_trail)

    def test_add_and_list_expense(self):
        expense = self.expense_manager.add_expense(
            user_email="Alice@Example.com",
            expense_type="Groceries",
            recipient="Corner Shop",
            amount=Money(Decimal("42.5")),
            remarks="weekly shop"
        )

        expenses = self.expense_manager.get_expenses("alice@example.com")

        assert len(expenses) == 1
        stored = expenses[0]
        assert stored.id == expense.id
        assert stored.user_email == "alice@example.com"
        assert stored.expense_type == "Groceries"
        assert stored.recipient == "Corner Shop"
        assert stored.amount.to_string() == "42.50"
        assert stored.remarks == "weekly shop"

        event = self.audit_trail.get_events_by_type(AuditEventType.EXPENSE_RECORDED)[0]
        assert event.entity_id == expense.id

    def test_expenses_are_per_user_and_newest_first(self):
        older = self.expense_manager.add_expense(
            "a@example.com", "Rent", "Landlord", Money(Decimal("500")),
            date=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        newer = self.expense_manager.add_expense(
            "a@example.com", "Food", "Cafe", Money(Decimal("8")),
            date=datetime(2024, 2, 1, tzinfo=timezone.utc)
        )
        self.expense_manager.add_expense("b@example.com", "Food", "Cafe", Money(Decimal("9")))

        expenses = self.expense_manager.get_expenses("a@example.com")

        assert [e.id for e in expenses] == [newer.id, older.id]

    def test_expenses_do_not_touch_balances(self):
        self.expense_manager.add_expense("a@example.com", "Food", "Cafe", Money(Decimal("8")))
        assert self.storage.count("accounts") == 0
        assert self.storage.count("transactions") == 0

    @pytest.mark.parametrize("expense_type,recipient", [
        ("", "Cafe"),
        ("Food", ""),
        ("   ", "Cafe"),
        (None, "Cafe"),
    ])
    def test_missing_fields(self, expense_type, recipient):
        with pytest.raises(ValidationError, match="Missing required fields"):
            self.expense_manager.add_expense("a@example.com", expense_type, recipient,
                                             Money(Decimal("1")))
        assert self.storage.count("expenses") == 0

    def test_missing_email(self):
        with pytest.raises(ValidationError):
            self.expense_manager.add_expense("", "Food", "Cafe", Money(Decimal("1")))

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError, match="must be positive"):
            self.expense_manager.add_expense("a@example.com", "Food", "Cafe", Money(Decimal(amount)))

    def test_no_expenses(self):
        assert self.expense_manager.get_expenses("nobody@example.com") == []


class TestExpenseTypes:
    """Test the expense type list"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.expense_manager = ExpenseManager(self.storage, self.audit_trail)

    def test_add_and_list_types(self):
        food = self.expense_manager.add_expense_type("Food")
        rent = self.expense_manager.add_expense_type("  Rent ")

        types = self.expense_manager.list_expense_types()

        assert [t.name for t in types] == ["Food", "Rent"]
        assert types[0].id == food.id
        assert rent.name == "Rent"

    def test_duplicate_type_rejected(self):
        self.expense_manager.add_expense_type("Food")

        with pytest.raises(DuplicateExpenseType) as exc_info:
            self.expense_manager.add_expense_type("Food")

        assert exc_info.value.status_code == 409
        assert len(self.expense_manager.list_expense_types()) == 1
        assert len(self.audit_trail.get_events_by_type(AuditEventType.EXPENSE_TYPE_CREATED)) == 1

    @pytest.mark.parametrize("name", [None, "", "  "])
    def test_name_required(self, name):
        with pytest.raises(ValidationError, match="Expense type is required"):
            self.expense_manager.add_expense_type(name)

    def test_empty_list(self):
        assert self.expense_manager.list_expense_types() == []
