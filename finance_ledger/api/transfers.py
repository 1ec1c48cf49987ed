"""
Fund transfer, transaction history and balance override endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .auth import (
    LedgerSystem, Principal, authorize_account, get_current_user, get_ledger_system, require_admin
)
from .errors import storage_guard
from .schemas import TransactionModel, TransactionsRequest, TransferRequest, UpdateBalanceRequest
from ..errors import ValidationError
from ..money import Money


router = APIRouter()


@router.post("/transfer")
def transfer(
    request: TransferRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer funds from the sender to the receiver"""
    authorize_account(principal, request.senderEmail, allow_admin=False)
    amount = Money.parse(request.amount)

    with storage_guard("Error processing transfer", user_id=request.senderEmail):
        transaction = system.transaction_processor.transfer(
            sender_email=request.senderEmail,
            receiver_email=request.receiverEmail,
            amount=amount,
            category=request.category,
            description=request.description,
            date=request.date
        )

    return {"message": "Transfer Successful", "transactionId": transaction.id}


@router.post("/api/transactions")
def list_transactions(
    request: TransactionsRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transactions sent or received by the email, most recent first"""
    authorize_account(principal, request.email)
    with storage_guard("Error fetching transactions", user_id=request.email):
        transactions = system.transaction_processor.get_account_transactions(request.email)

    return {"transactions": [TransactionModel.from_transaction(t).model_dump() for t in transactions]}


@router.post("/api/updateBalance")
def update_balance(
    request: UpdateBalanceRequest,
    principal: Optional[Principal] = Depends(require_admin),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Administrative balance override"""
    if not request.email or request.balance is None:
        raise ValidationError("Email and balance are required")
    balance = Money.parse(request.balance, "balance")

    with storage_guard("Error updating balance", user_id=principal.email if principal else None):
        system.account_manager.set_balance(
            request.email, balance, actor=principal.email if principal else None
        )

    return {"message": "Balance updated successfully"}
