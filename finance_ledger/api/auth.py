"""
Ledger system container and authentication/authorization dependencies
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..accounts import AccountManager, normalize_email
from ..audit import AuditTrail
from ..config import LedgerConfig, get_config
from ..errors import AuthorizationError, InvalidCredentials
from ..expenses import ExpenseManager
from ..money import Money
from ..security import PasswordHasher, TokenService
from ..storage import StorageInterface, create_storage
from ..transactions import TransactionProcessor


class LedgerSystem:
    """Ledger components wired to one storage backend"""

    def __init__(self, config: Optional[LedgerConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)

        self.audit_trail = AuditTrail(self.storage)
        self.password_hasher = PasswordHasher(self.config.password_hash_cost)
        self.token_service = TokenService(
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            expiry_minutes=self.config.jwt_expiry_minutes
        )
        self.account_manager = AccountManager(
            self.storage, self.audit_trail, self.password_hasher,
            initial_balance=Money.parse(self.config.initial_balance, "initial_balance")
        )
        self.transaction_processor = TransactionProcessor(
            self.storage, self.account_manager, self.audit_trail
        )
        self.expense_manager = ExpenseManager(self.storage, self.audit_trail)

    def role_for(self, email: str) -> str:
        return "admin" if email in self.config.admin_email_list else "user"

    def issue_token(self, email: str) -> str:
        return self.token_service.issue(email, role=self.role_for(email))

    def close(self) -> None:
        self.storage.close()


@dataclass
class Principal:
    """Authenticated caller, taken from a verified bearer token"""
    email: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


security = HTTPBearer(auto_error=False)


def get_ledger_system(request: Request) -> LedgerSystem:
    return request.app.state.ledger_system


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LedgerSystem = Depends(get_ledger_system)
) -> Optional[Principal]:
    """
    Validate the bearer token. Returns None when authentication is disabled,
    which makes every route trust the network.
    """
    if not system.config.auth_enabled:
        return None

    if not credentials:
        raise InvalidCredentials("Not authenticated")

    payload = system.token_service.verify(credentials.credentials)
    return Principal(email=payload["sub"], role=payload.get("role", "user"))


def require_admin(principal: Optional[Principal] = Depends(get_current_user)) -> Optional[Principal]:
    if principal is not None and not principal.is_admin:
        raise AuthorizationError("Admin privileges required")
    return principal


def authorize_account(principal: Optional[Principal], email: Optional[str],
                      allow_admin: bool = True) -> None:
    """
    Allow acting on an account only as its owner, or as an admin when
    allow_admin is set. Moving money out of an account is owner-only.
    """
    if principal is None or (allow_admin and principal.is_admin):
        return
    if not email or not email.strip():
        # Let the route report the missing field
        return
    if normalize_email(email) != principal.email:
        raise AuthorizationError("Not allowed to act on this account")
