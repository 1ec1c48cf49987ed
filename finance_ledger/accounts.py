"""
Account Management Module

Manages user accounts: registration, authentication, profile settings,
password changes, administrative balance overrides and deletion.

Accounts are stored in the "accounts" table keyed by normalized email, which
makes email uniqueness a storage-level constraint.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord, DuplicateRecordError
from .audit import AuditTrail, AuditEventType
from .security import PasswordHasher
from .errors import DuplicateAccount, InvalidCredentials, UnknownAccount, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger(__name__)

ACCOUNTS_TABLE = "accounts"


def normalize_email(email: Optional[str]) -> str:
    """Strip and lower-case an email, raising ValidationError when it is empty"""
    if not email or not email.strip():
        raise ValidationError("Email is required")
    return email.strip().lower()


@dataclass
class Account(StorageRecord):
    """
    User account with its balance and the ids of transactions it took part in
    """
    email: str
    name: str
    password_hash: str
    password_salt: str
    balance: Money
    transaction_ids: List[str] = field(default_factory=list)
    notifications: Dict[str, Any] = field(default_factory=dict)

    def debit(self, amount: Money) -> None:
        self.balance = self.balance - amount

    def credit(self, amount: Money) -> None:
        self.balance = self.balance + amount

    def link_transaction(self, transaction_id: str) -> None:
        self.transaction_ids.append(transaction_id)


def account_to_dict(account: Account) -> Dict[str, Any]:
    """Convert Account to dictionary for storage"""
    return {
        "id": account.id,
        "created_at": account.created_at.isoformat(),
        "updated_at": account.updated_at.isoformat(),
        "email": account.email,
        "name": account.name,
        "password_hash": account.password_hash,
        "password_salt": account.password_salt,
        "balance": account.balance.to_string(),
        "transaction_ids": list(account.transaction_ids),
        "notifications": dict(account.notifications)
    }


def account_from_dict(data: Dict[str, Any]) -> Account:
    """Convert dictionary to Account"""
    return Account(
        id=data['id'],
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=datetime.fromisoformat(data['updated_at']),
        email=data['email'],
        name=data.get('name') or "",
        password_hash=data['password_hash'],
        password_salt=data['password_salt'],
        balance=Money(Decimal(data['balance'])),
        transaction_ids=list(data.get('transaction_ids', [])),
        notifications=dict(data.get('notifications') or {})
    )


class AccountManager:
    """
    Manages account lifecycle and credentials
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        password_hasher: Optional[PasswordHasher] = None,
        initial_balance: Money = Money(Decimal('1000'))
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.password_hasher = password_hasher or PasswordHasher()
        self.initial_balance = initial_balance
        self.accounts_table = ACCOUNTS_TABLE

    def register_account(self, name: str, email: str, password: str) -> Account:
        """
        Create a new account funded with the initial grant

        Args:
            name: Display name
            email: Unique login email
            password: Plaintext password, stored only as a salted hash

        Returns:
            Created Account

        Raises:
            ValidationError: If a field is missing
            DuplicateAccount: If the email is already registered
        """
        email = normalize_email(email)
        if not name or not name.strip():
            raise ValidationError("Name is required")
        if not password:
            raise ValidationError("Password is required")

        now = datetime.now(timezone.utc)
        password_hash, salt = self.password_hasher.hash_new(password)

        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            email=email,
            name=name.strip(),
            password_hash=password_hash,
            password_salt=salt,
            balance=self.initial_balance
        )

        with self.storage.atomic():
            try:
                self.storage.insert(self.accounts_table, email, account_to_dict(account))
            except DuplicateRecordError:
                raise DuplicateAccount(email)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=email,
                metadata={"account_id": account.id, "initial_balance": account.balance.to_string()},
                user_id=email
            )

        log_action(logger, "info", "Account registered", user_id=email,
                   action="register", resource="account")
        return account

    def authenticate(self, email: str, password: str) -> Account:
        """
        Verify credentials

        Raises:
            InvalidCredentials: For an unknown email or a wrong password alike
        """
        try:
            email = normalize_email(email)
        except ValidationError:
            raise InvalidCredentials()

        account = self.get_account(email)
        if account is None:
            # Same hashing cost as a real check so timing does not reveal the email
            self.password_hasher.hash(password or "", PasswordHasher.generate_salt())
        if account is None or not self.password_hasher.verify(
                password or "", account.password_hash, account.password_salt):
            reason = "unknown_account" if account is None else "invalid_password"
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_FAILED,
                entity_type="account",
                entity_id=email,
                metadata={"reason": reason}
            )
            log_action(logger, "warning", "Authentication failed", user_id=email,
                       action="login_failed", resource="auth", extra={"reason": reason})
            raise InvalidCredentials()

        self.audit_trail.log_event(
            event_type=AuditEventType.LOGIN_SUCCESS,
            entity_type="account",
            entity_id=email,
            user_id=email
        )
        return account

    def get_account(self, email: str) -> Optional[Account]:
        """Get account by email"""
        data = self.storage.load(self.accounts_table, normalize_email(email))
        if data:
            return account_from_dict(data)
        return None

    def require_account(self, email: str) -> Account:
        account = self.get_account(email)
        if account is None:
            raise UnknownAccount(email)
        return account

    def get_settings(self, email: str) -> Dict[str, Any]:
        account = self.require_account(email)
        return {
            "profile": {"name": account.name, "email": account.email},
            "notifications": account.notifications
        }

    def update_settings(self, email: str, name: Optional[str] = None,
                        notifications: Optional[Dict[str, Any]] = None) -> Account:
        """Update display name and notification preferences"""
        email = normalize_email(email)
        with self.storage.atomic():
            account = self._load_for_update(email)
            changed = []
            if name is not None and name.strip():
                account.name = name.strip()
                changed.append("name")
            if notifications is not None:
                account.notifications = dict(notifications)
                changed.append("notifications")

            account.updated_at = datetime.now(timezone.utc)
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_UPDATED,
                entity_type="account",
                entity_id=email,
                metadata={"fields": changed},
                user_id=email
            )
        return account

    def change_password(self, email: str, new_password: str) -> None:
        """Replace the password hash, using a fresh salt"""
        email = normalize_email(email)
        if not new_password:
            raise ValidationError("Password is required")

        password_hash, salt = self.password_hasher.hash_new(new_password)
        with self.storage.atomic():
            account = self._load_for_update(email)
            account.password_hash = password_hash
            account.password_salt = salt
            account.updated_at = datetime.now(timezone.utc)
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.PASSWORD_CHANGED,
                entity_type="account",
                entity_id=email,
                user_id=email
            )

        log_action(logger, "info", "Password changed", user_id=email,
                   action="change_password", resource="account")

    def set_balance(self, email: str, new_balance: Money, actor: Optional[str] = None) -> Account:
        """
        Administrative balance override

        Bypasses the transfer path, so every override is audited with the old
        and new balance and the acting admin.
        """
        email = normalize_email(email)
        with self.storage.atomic():
            account = self._load_for_update(email)
            old_balance = account.balance
            account.balance = new_balance
            account.updated_at = datetime.now(timezone.utc)
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_OVERRIDDEN,
                entity_type="account",
                entity_id=email,
                metadata={
                    "old_balance": old_balance.to_string(),
                    "new_balance": new_balance.to_string()
                },
                user_id=actor
            )

        log_action(logger, "warning", "Balance overridden", user_id=actor,
                   action="set_balance", resource="account",
                   extra={"account": email, "old_balance": old_balance.to_string(),
                          "new_balance": new_balance.to_string()})
        return account

    def delete_account(self, email: str) -> None:
        """
        Remove the account record

        Transactions naming this email are kept unchanged as the historical
        record; they reference the email string, not the account document.
        """
        email = normalize_email(email)
        with self.storage.atomic():
            account = self._load_for_update(email)
            self.storage.delete(self.accounts_table, email)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DELETED,
                entity_type="account",
                entity_id=email,
                metadata={
                    "account_id": account.id,
                    "final_balance": account.balance.to_string(),
                    "retained_transactions": len(account.transaction_ids)
                },
                user_id=email
            )

        log_action(logger, "info", "Account deleted", user_id=email,
                   action="delete_account", resource="account")

    def save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.email, account_to_dict(account))

    def _load_for_update(self, email: str) -> Account:
        data = self.storage.load_for_update(self.accounts_table, email)
        if data is None:
            raise UnknownAccount(email)
        return account_from_dict(data)
