"""
Ledger error taxonomy.

Every error carries the HTTP status the API layer renders it with. Messages
are safe to show to clients.
"""


class LedgerError(Exception):
    """Base class for errors raised by ledger operations"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Missing or malformed input, detected before any mutation"""

    status_code = 400


class DuplicateAccount(LedgerError):
    status_code = 409

    def __init__(self, email: str):
        super().__init__("An account with this email already exists")
        self.email = email


class DuplicateExpenseType(LedgerError):
    status_code = 409

    def __init__(self, name: str):
        super().__init__(f"Expense type '{name}' already exists")
        self.name = name


class InvalidCredentials(LedgerError):
    """Authentication failed; never says whether the email or the password was wrong"""

    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AuthorizationError(LedgerError):
    status_code = 403


class UnknownAccount(LedgerError):
    """No account for the email; 404 when addressed directly, 400 as a transfer precondition"""

    status_code = 404

    def __init__(self, email: str, message: str = "Account not found",
                 status_code: int = 404):
        super().__init__(message)
        self.email = email
        self.status_code = status_code


class InsufficientFunds(LedgerError):
    status_code = 400

    def __init__(self, message: str = "Transaction Failed - Low Balance"):
        super().__init__(message)


class StorageError(LedgerError):
    """Backing store failure; the message is generic by construction"""

    status_code = 500
