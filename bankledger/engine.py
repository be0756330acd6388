"""
Transaction engine: the only code path that moves money.

Each operation validates the amount and the caller first, then runs the
sufficiency check, the history insert and the balance updates inside one
atomic unit of the store. Debits read the source balance under the unit's
write lock, so concurrent withdrawals on one account are serialized and can
never overdraw it.
"""

import logging
from decimal import Decimal

from .auth import AuthGateway
from .domain import Account, Transaction, TransactionKind, TransferResult, as_amount
from .errors import InsufficientFunds, InvalidTransfer
from .store import AccountStore, AtomicUnit

log = logging.getLogger("engine")


class TransactionEngine:
    def __init__(self, store: AccountStore):
        self.store = store

    @staticmethod
    def _check_funds(unit: AtomicUnit, account_number: int, amount: Decimal) -> None:
        balance = unit.lock(account_number).balance
        if balance < amount:
            log.info("insufficient number=%s amount=%s balance=%s", account_number, amount, balance)
            raise InsufficientFunds(f"insufficient funds: balance {balance}, requested {amount}")

    def deposit(self, account_number: int, amount, caller: Account) -> Account:
        amount = as_amount(amount)
        AuthGateway.authorize_self(caller, account_number)
        with self.store.atomic() as unit:
            unit.lock(account_number)
            txn = unit.append(Transaction(TransactionKind.DEPOSIT, amount, destination=account_number))
            unit.adjust_balance(account_number, amount)
            account = unit.lock(account_number)
        log.info("deposit number=%s amount=%s new_balance=%s txn=%s", account_number, amount, account.balance, txn.id)
        return account

    def withdraw(self, account_number: int, amount, caller: Account) -> Account:
        amount = as_amount(amount)
        AuthGateway.authorize_self(caller, account_number)
        with self.store.atomic() as unit:
            self._check_funds(unit, account_number, amount)
            txn = unit.append(Transaction(TransactionKind.WITHDRAW, amount, source=account_number))
            unit.adjust_balance(account_number, amount.copy_negate())
            account = unit.lock(account_number)
        log.info("withdraw number=%s amount=%s new_balance=%s txn=%s", account_number, amount, account.balance, txn.id)
        return account

    def transfer(self, from_number: int, to_number: int, amount, caller: Account) -> TransferResult:
        amount = as_amount(amount)
        AuthGateway.authorize_self(caller, from_number)
        if from_number == to_number:
            raise InvalidTransfer(f"cannot transfer from account {from_number} to itself")
        with self.store.atomic() as unit:
            # destination first: a missing payee rejects before the source is touched
            unit.lock(to_number)
            self._check_funds(unit, from_number, amount)
            txn = unit.append(
                Transaction(TransactionKind.TRANSFER, amount, source=from_number, destination=to_number)
            )
            unit.adjust_balance(from_number, amount.copy_negate())
            unit.adjust_balance(to_number, amount)
            account = unit.lock(from_number)
        log.info(
            "transfer from=%s to=%s amount=%s new_balance=%s txn=%s",
            from_number, to_number, amount, account.balance, txn.id,
        )
        return TransferResult(account=account, transaction=txn)

    def history(self, account_number: int, caller: Account) -> list[Transaction]:
        AuthGateway.authorize_self(caller, account_number)
        return self.store.transactions(account_number)
