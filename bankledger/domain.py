from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, Inexact, localcontext
from enum import Enum

from .errors import InvalidAmount

ZERO = Decimal("0")
# significant digits a balance may carry; sums that need more are refused, never rounded
MAX_DIGITS = 64
# SQLite INTEGER is a signed 64-bit value
MAX_ACCOUNT_NUMBER = 2**63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


def as_amount(value) -> Decimal:
    """Validate a caller-supplied amount: a finite Decimal (or int) strictly above zero.

    No rounding is applied; the exact value is what gets booked.
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise InvalidAmount(f"amount must be a decimal number, got {type(value).__name__}")
    amount = Decimal(value)
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidAmount()
    if len(amount.as_tuple().digits) > MAX_DIGITS:
        raise InvalidAmount(f"amount has more than {MAX_DIGITS} significant digits")
    return amount


def add_exact(balance: Decimal, delta: Decimal) -> Decimal:
    """``balance + delta`` computed exactly, or InvalidAmount if the result would need rounding."""
    with localcontext() as ctx:
        ctx.prec = MAX_DIGITS
        ctx.traps[Inexact] = True
        try:
            return balance + delta
        except Inexact as e:
            raise InvalidAmount(f"balance cannot hold {delta} exactly within {MAX_DIGITS} digits") from e


@dataclass
class Account:
    first_name: str
    last_name: str
    account_number: int
    password_hash: str = field(default="", repr=False)
    balance: Decimal = ZERO
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def snapshot(self) -> "Account":
        return replace(self)

    def public(self) -> dict:
        """Client-facing view; the credential hash never leaves the service."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "account_number": self.account_number,
            "balance": str(self.balance),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Transaction:
    kind: TransactionKind
    amount: Decimal
    source: int | None = None
    destination: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "kind", TransactionKind(self.kind))
        if self.amount <= ZERO:
            raise InvalidAmount()
        expected = {
            TransactionKind.DEPOSIT: (False, True),
            TransactionKind.WITHDRAW: (True, False),
            TransactionKind.TRANSFER: (True, True),
        }[self.kind]
        if (self.source is not None, self.destination is not None) != expected:
            raise ValueError(
                f"{self.kind.value} transaction has source={self.source} destination={self.destination}"
            )

    def public(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "amount": str(self.amount),
            "source": self.source,
            "destination": self.destination,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TransferResult:
    account: Account
    transaction: Transaction

    def public(self) -> dict:
        return {"account": self.account.public(), "transaction": self.transaction.public()}


@dataclass(frozen=True)
class Credential:
    token: str
    account_number: int
    expires_at: datetime

    def public(self) -> dict:
        return {
            "token": self.token,
            "token_type": "bearer",
            "account_number": self.account_number,
            "expires_at": self.expires_at.isoformat(),
        }
