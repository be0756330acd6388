class LedgerError(Exception):
    """Base for every error the ledger reports to a caller."""
    code = "LEDGER_ERROR"
    status = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class InvalidAmount(LedgerError):
    """amount must be > 0"""
    code = "INVALID_AMOUNT"


class InvalidTransfer(LedgerError):
    """source and destination must differ"""
    code = "INVALID_TRANSFER"


class InsufficientFunds(LedgerError):
    """insufficient funds"""
    code = "INSUFFICIENT_FUNDS"


class Forbidden(LedgerError):
    """not allowed to act on this account"""
    code = "FORBIDDEN"
    status = 403


class NotFound(LedgerError):
    """account does not exist"""
    code = "NOT_FOUND"
    status = 404


class DuplicateKey(LedgerError):
    """account already exists"""
    code = "CONFLICT"
    status = 409


class AccountNotEmpty(LedgerError):
    """account balance must be zero before deletion"""
    code = "CONFLICT"
    status = 409


class Unauthenticated(LedgerError):
    """Permission Denied"""
    code = "UNAUTHORIZED"
    status = 401


class InvalidCredentials(LedgerError):
    """invalid login credentials"""
    code = "INVALID_CREDENTIALS"
    status = 401


class StoreFailure(LedgerError):
    """storage unavailable"""
    code = "STORE_FAILURE"
    status = 503
