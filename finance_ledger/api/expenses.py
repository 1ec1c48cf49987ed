"""
Expense logging and expense type endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .auth import LedgerSystem, Principal, authorize_account, get_current_user, get_ledger_system
from .errors import storage_guard
from .schemas import (
    AddExpenseRequest, ExpenseModel, ExpenseTypeModel, ExpenseTypeRequest, ExpensesRequest
)
from ..errors import ValidationError
from ..money import Money


router = APIRouter()


@router.post("/api/expenses")
def list_expenses(
    request: ExpensesRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Expenses recorded by the user, most recent first"""
    if not request.userEmail:
        raise ValidationError("User email is required")
    authorize_account(principal, request.userEmail)

    with storage_guard("Error fetching expenses", user_id=request.userEmail):
        expenses = system.expense_manager.get_expenses(request.userEmail)

    return {"expenses": [ExpenseModel.from_expense(e).model_dump() for e in expenses]}


@router.post("/api/add-expense", status_code=status.HTTP_201_CREATED)
def add_expense(
    request: AddExpenseRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record an expense"""
    if not request.userEmail or not request.expenseType or not request.recipient or request.amount is None:
        raise ValidationError("Missing required fields")
    authorize_account(principal, request.userEmail)
    amount = Money.parse(request.amount)

    with storage_guard("Error saving expense", user_id=request.userEmail):
        system.expense_manager.add_expense(
            user_email=request.userEmail,
            expense_type=request.expenseType,
            recipient=request.recipient,
            amount=amount,
            remarks=request.remarks,
            date=request.date
        )

    return {"message": "Expense saved successfully!"}


@router.get("/api/expense-types")
def list_expense_types(system: LedgerSystem = Depends(get_ledger_system)):
    """All expense types"""
    with storage_guard("Server Error"):
        types = system.expense_manager.list_expense_types()
    return [ExpenseTypeModel.from_expense_type(t).model_dump() for t in types]


@router.post("/api/expense-types", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(get_current_user)])
def add_expense_type(
    request: ExpenseTypeRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Add a new expense type"""
    with storage_guard("Could not save expense type"):
        expense_type = system.expense_manager.add_expense_type(request.name)
    return ExpenseTypeModel.from_expense_type(expense_type).model_dump()
