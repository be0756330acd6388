"""
Account store capability.

The engine only talks to an ``AccountStore``; ``db.SQLiteAccountStore`` is the
persistent backend and ``InMemoryAccountStore`` backs tests and local runs.
All balances and amounts are ``Decimal``.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Iterator, List

from .domain import ZERO, Account, Transaction, add_exact
from .errors import AccountNotEmpty, DuplicateKey, NotFound


class AtomicUnit(ABC):
    """Mutations staged inside ``AccountStore.atomic()``; all commit or none do."""

    @abstractmethod
    def lock(self, account_number: int) -> Account:
        """Read a fresh snapshot of the account under the unit's write scope."""

    @abstractmethod
    def adjust_balance(self, account_number: int, delta: Decimal) -> None:
        """Add ``delta`` (may be negative) to the stored balance."""

    @abstractmethod
    def append(self, txn: Transaction) -> Transaction:
        """Insert a history record and return it with its assigned id."""


class AccountStore(ABC):
    """Abstract interface for account storage backends"""

    @abstractmethod
    def create(self, account: Account) -> Account:
        """Insert a new account with balance 0."""

    @abstractmethod
    def get_by_number(self, account_number: int) -> Account:
        pass

    @abstractmethod
    def get_by_id(self, account_id: int) -> Account:
        pass

    @abstractmethod
    def list(self) -> List[Account]:
        pass

    @abstractmethod
    def delete(self, account_id: int) -> None:
        """Remove an account. Refused while its balance is non-zero."""

    @abstractmethod
    def set_balance(self, account_number: int, new_balance: Decimal) -> Account:
        """Unconditional overwrite, outside the engine's bookkeeping."""

    @abstractmethod
    def transactions(self, account_number: int | None = None) -> List[Transaction]:
        """History oldest first, optionally only rows touching ``account_number``."""

    @abstractmethod
    def atomic(self):
        """Context manager yielding an ``AtomicUnit``."""

    def close(self) -> None:
        pass


class _MemoryUnit(AtomicUnit):
    def __init__(self, store: "InMemoryAccountStore"):
        self._store = store
        self.balances: dict[int, Decimal] = {}
        self.appended: list[Transaction] = []

    def _account(self, account_number: int) -> Account:
        for acct in self._store._accounts.values():
            if acct.account_number == account_number:
                return acct
        raise NotFound(f"Account {account_number} not found")

    def lock(self, account_number: int) -> Account:
        acct = self._account(account_number)
        return replace(acct, balance=self.balances.get(account_number, acct.balance))

    def adjust_balance(self, account_number: int, delta: Decimal) -> None:
        current = self.lock(account_number).balance
        self.balances[account_number] = add_exact(current, delta)

    def append(self, txn: Transaction) -> Transaction:
        staged = replace(txn, id=self._store._next_txn_id + len(self.appended))
        self.appended.append(staged)
        return staged


class InMemoryAccountStore(AccountStore):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._accounts: dict[int, Account] = {}
        self._history: list[Transaction] = []
        self._ids = itertools.count(1)
        self._next_txn_id = 1
        self._lock = threading.RLock()

    def create(self, account: Account) -> Account:
        with self._lock:
            if any(a.account_number == account.account_number for a in self._accounts.values()):
                raise DuplicateKey(f"Account {account.account_number} already exists")
            stored = replace(account, id=next(self._ids), balance=ZERO)
            self._accounts[stored.id] = stored
            return stored.snapshot()

    def get_by_number(self, account_number: int) -> Account:
        with self._lock:
            for acct in self._accounts.values():
                if acct.account_number == account_number:
                    return acct.snapshot()
        raise NotFound(f"Account with number {account_number} not found")

    def get_by_id(self, account_id: int) -> Account:
        with self._lock:
            acct = self._accounts.get(account_id)
            if acct is None:
                raise NotFound(f"Account with id {account_id} not found")
            return acct.snapshot()

    def list(self) -> List[Account]:
        with self._lock:
            return [a.snapshot() for _, a in sorted(self._accounts.items())]

    def delete(self, account_id: int) -> None:
        with self._lock:
            acct = self._accounts.get(account_id)
            if acct is None:
                raise NotFound(f"Account with id {account_id} not found")
            if acct.balance != ZERO:
                raise AccountNotEmpty(f"Account {acct.account_number} still holds {acct.balance}")
            del self._accounts[account_id]

    def set_balance(self, account_number: int, new_balance: Decimal) -> Account:
        with self._lock:
            acct = self._accounts[self.get_by_number(account_number).id]
            acct.balance = Decimal(new_balance)
            return acct.snapshot()

    def transactions(self, account_number: int | None = None) -> List[Transaction]:
        with self._lock:
            if account_number is None:
                return list(self._history)
            return [t for t in self._history if account_number in (t.source, t.destination)]

    @contextmanager
    def atomic(self) -> Iterator[AtomicUnit]:
        with self._lock:
            unit = _MemoryUnit(self)
            yield unit
            # publish only after the block finished without raising
            for number, balance in unit.balances.items():
                self._accounts[self.get_by_number(number).id].balance = balance
            self._history.extend(unit.appended)
            self._next_txn_id += len(unit.appended)
