"""
Pydantic schemas for API requests and responses

Field names are camelCase to match the web client. Required-field checks for
the ledger routes happen in the service layer so that a missing field yields
the same 400 message whether it was absent or empty.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator

from ..accounts import Account
from ..expenses import Expense, ExpenseType
from ..transactions import Transaction


# Numbers or numeric strings; converted with Money.parse
AmountInput = Union[int, float, str]


class DatedRequest(BaseModel):
    date: Optional[datetime] = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, str) and len(value.strip()) == 10:
            # Plain YYYY-MM-DD from date pickers
            return datetime.combine(date.fromisoformat(value.strip()), time(), tzinfo=timezone.utc)
        return value


# Account schemas
class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SettingsProfile(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class UpdateSettingsRequest(BaseModel):
    profile: SettingsProfile
    notifications: Optional[Dict[str, Any]] = None


class ChangePasswordRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    email: Optional[str] = None


class UserModel(BaseModel):
    id: str
    name: str
    email: str
    balance: str = Field(..., description="Decimal amount as string")
    transactions: List[str]

    @classmethod
    def from_account(cls, account: Account) -> 'UserModel':
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            balance=account.balance.to_string(),
            transactions=list(account.transaction_ids)
        )


# Transfer schemas
class TransferRequest(DatedRequest):
    senderEmail: Optional[str] = None
    receiverEmail: Optional[str] = None
    amount: Optional[AmountInput] = None
    category: Optional[str] = ""
    description: Optional[str] = ""


class TransactionsRequest(BaseModel):
    email: Optional[str] = None


class UpdateBalanceRequest(BaseModel):
    email: Optional[str] = None
    balance: Optional[AmountInput] = None


class TransactionModel(BaseModel):
    id: str
    senderEmail: str
    receiverEmail: str
    amount: str
    category: str
    description: str
    date: str

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            id=transaction.id,
            senderEmail=transaction.sender_email,
            receiverEmail=transaction.receiver_email,
            amount=transaction.amount.to_string(),
            category=transaction.category,
            description=transaction.description,
            date=transaction.date.isoformat()
        )


# Expense schemas
class ExpensesRequest(BaseModel):
    userEmail: Optional[str] = None


class AddExpenseRequest(DatedRequest):
    userEmail: Optional[str] = None
    expenseType: Optional[str] = None
    recipient: Optional[str] = None
    amount: Optional[AmountInput] = None
    remarks: Optional[str] = ""


class ExpenseModel(BaseModel):
    id: str
    userEmail: str
    expenseType: str
    recipient: str
    amount: str
    remarks: str
    date: str

    @classmethod
    def from_expense(cls, expense: Expense) -> 'ExpenseModel':
        return cls(
            id=expense.id,
            userEmail=expense.user_email,
            expenseType=expense.expense_type,
            recipient=expense.recipient,
            amount=expense.amount.to_string(),
            remarks=expense.remarks,
            date=expense.date.isoformat()
        )


class ExpenseTypeRequest(BaseModel):
    name: Optional[str] = None


class ExpenseTypeModel(BaseModel):
    id: str
    name: str

    @classmethod
    def from_expense_type(cls, expense_type: ExpenseType) -> 'ExpenseTypeModel':
        return cls(id=expense_type.id, name=expense_type.name)
