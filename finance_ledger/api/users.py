"""
Signup, login and account settings endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from .auth import LedgerSystem, Principal, authorize_account, get_current_user, get_ledger_system
from .errors import storage_guard
from .schemas import (
    ChangePasswordRequest, DeleteAccountRequest, LoginRequest, SignupRequest,
    UpdateSettingsRequest, UserModel
)


router = APIRouter()


@router.post("/signup")
def signup(
    request: SignupRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Register a new account"""
    with storage_guard("Error signing up"):
        system.account_manager.register_account(
            name=request.name,
            email=request.email,
            password=request.password
        )
    return {"message": "User Registered!"}


@router.post("/login")
def login(
    request: LoginRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Authenticate and return a session token"""
    with storage_guard("Error logging in"):
        account = system.account_manager.authenticate(request.email, request.password)
        token = system.issue_token(account.email)

    return {"token": token, "user": UserModel.from_account(account).model_dump()}


@router.get("/user/settings")
def get_settings(
    email: Optional[str] = Query(None),
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get profile and notification settings"""
    authorize_account(principal, email)
    with storage_guard("Error fetching user settings", user_id=email):
        return system.account_manager.get_settings(email)


@router.put("/user/settings", response_class=PlainTextResponse)
def update_settings(
    request: UpdateSettingsRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Update display name and notification settings"""
    authorize_account(principal, request.profile.email)
    with storage_guard("Error updating settings", user_id=request.profile.email):
        system.account_manager.update_settings(
            email=request.profile.email,
            name=request.profile.name,
            notifications=request.notifications
        )
    return "Settings updated"


@router.put("/user/change-password", response_class=PlainTextResponse)
def change_password(
    request: ChangePasswordRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Replace the account password"""
    authorize_account(principal, request.email)
    with storage_guard("Error changing password", user_id=request.email):
        system.account_manager.change_password(request.email, request.password)
    return "Password updated"


@router.delete("/user/delete-account", response_class=PlainTextResponse)
def delete_account(
    request: DeleteAccountRequest,
    principal: Optional[Principal] = Depends(get_current_user),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete the account; its transactions stay in the history"""
    authorize_account(principal, request.email)
    with storage_guard("Error deleting account", user_id=request.email):
        system.account_manager.delete_account(request.email)
    return "Account deleted"
