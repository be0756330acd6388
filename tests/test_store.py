import sqlite3
from contextlib import closing
from decimal import Decimal

import pytest

from bankledger.db import SQLiteAccountStore, seed_if_empty
from bankledger.domain import Account, Transaction, TransactionKind
from bankledger.engine import TransactionEngine
from bankledger.errors import AccountNotEmpty, DuplicateKey, NotFound, StoreFailure
from bankledger.store import InMemoryAccountStore


def new_account(number: int, first="Ada", last="Lovelace") -> Account:
    return Account(first_name=first, last_name=last, account_number=number, password_hash="h")


def test_create_assigns_id_and_zero_balance(store):
    acct = store.create(new_account(42))
    assert acct.id is not None
    assert acct.balance == Decimal("0")
    assert store.get_by_id(acct.id) == store.get_by_number(42)


def test_create_ignores_incoming_balance(store):
    acct = new_account(43)
    acct.balance = Decimal("1000")
    assert store.create(acct).balance == Decimal("0")


def test_duplicate_account_number_conflicts(store):
    first = store.create(new_account(7, first="First"))
    with pytest.raises(DuplicateKey):
        store.create(new_account(7, first="Second"))
    survivor = store.get_by_number(7)
    assert survivor.id == first.id
    assert survivor.first_name == "First"
    assert len(store.list()) == 1


def test_lookups_of_missing_accounts(store):
    with pytest.raises(NotFound):
        store.get_by_number(404)
    with pytest.raises(NotFound):
        store.get_by_id(404)
    with pytest.raises(NotFound):
        store.set_balance(404, Decimal("1"))
    with pytest.raises(NotFound):
        store.delete(404)


def test_out_of_range_numbers_are_simply_missing(store):
    with pytest.raises(NotFound):
        store.get_by_number(10**20)
    with pytest.raises(NotFound):
        store.get_by_id(2**63)
    with pytest.raises(NotFound):
        store.set_balance(10**20, Decimal("1"))
    with pytest.raises(NotFound):
        with store.atomic() as unit:
            unit.lock(10**20)


def test_list_returns_every_account(store):
    for n in (1, 2, 3):
        store.create(new_account(n))
    assert sorted(a.account_number for a in store.list()) == [1, 2, 3]


def test_set_balance_overwrites_and_returns_snapshot(store):
    store.create(new_account(5))
    acct = store.set_balance(5, Decimal("12.340"))
    assert acct.balance == Decimal("12.340")
    assert str(store.get_by_number(5).balance) == "12.340"


def test_delete_refused_while_balance_nonzero(store):
    acct = store.create(new_account(9))
    store.set_balance(9, Decimal("0.01"))
    with pytest.raises(AccountNotEmpty):
        store.delete(acct.id)
    assert store.get_by_number(9).balance == Decimal("0.01")


def test_delete_keeps_history_as_soft_reference(store):
    a = store.create(new_account(10))
    store.create(new_account(11))
    engine = TransactionEngine(store)
    engine.deposit(10, Decimal("3"), a)
    engine.transfer(10, 11, Decimal("3"), a)

    store.delete(a.id)
    with pytest.raises(NotFound):
        store.get_by_id(a.id)
    history = store.transactions(10)
    assert [t.kind for t in history] == [TransactionKind.DEPOSIT, TransactionKind.TRANSFER]
    assert history[1].source == 10


def test_atomic_unit_rolls_back_on_error(store):
    store.create(new_account(20))
    with pytest.raises(RuntimeError):
        with store.atomic() as unit:
            unit.append(Transaction(TransactionKind.DEPOSIT, Decimal("5"), destination=20))
            unit.adjust_balance(20, Decimal("5"))
            assert unit.lock(20).balance == Decimal("5")
            raise RuntimeError("boom")
    assert store.get_by_number(20).balance == Decimal("0")
    assert store.transactions() == []


def test_atomic_unit_commits_and_assigns_ids(store):
    store.create(new_account(21))
    with store.atomic() as unit:
        first = unit.append(Transaction(TransactionKind.DEPOSIT, Decimal("1"), destination=21))
        second = unit.append(Transaction(TransactionKind.WITHDRAW, Decimal("1"), source=21))
    assert first.id is not None and second.id is not None and first.id != second.id
    assert [t.id for t in store.transactions(21)] == [first.id, second.id]


def test_transaction_shape_is_validated():
    with pytest.raises(ValueError):
        Transaction(TransactionKind.TRANSFER, Decimal("1"), source=1)
    with pytest.raises(ValueError):
        Transaction(TransactionKind.DEPOSIT, Decimal("1"), source=1, destination=2)
    with pytest.raises(ValueError):
        Transaction(TransactionKind.WITHDRAW, Decimal("1"), destination=2)


def test_seed_if_empty_only_seeds_once():
    store = InMemoryAccountStore()
    seed_if_empty(store, "h")
    seeded = {a.account_number: a.balance for a in store.list()}
    assert len(seeded) == 3 and all(b > 0 for b in seeded.values())
    seed_if_empty(store, "h")
    assert len(store.list()) == 3


# ---------- sqlite specifics ----------

def test_store_failure_mid_transfer_rolls_back_everything(sqlite_store):
    a = sqlite_store.create(new_account(30))
    sqlite_store.create(new_account(31))
    sqlite_store.set_balance(30, Decimal("100"))
    engine = TransactionEngine(sqlite_store)

    with closing(sqlite3.connect(sqlite_store.path, isolation_level=None)) as conn:
        conn.execute(
            "CREATE TRIGGER reject_credit BEFORE UPDATE OF balance ON accounts "
            "WHEN NEW.account_number = 31 BEGIN SELECT RAISE(ABORT, 'credit rejected'); END"
        )
    try:
        with pytest.raises(StoreFailure) as excinfo:
            engine.transfer(30, 31, Decimal("40"), a)
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)
    finally:
        with closing(sqlite3.connect(sqlite_store.path, isolation_level=None)) as conn:
            conn.execute("DROP TRIGGER IF EXISTS reject_credit")

    assert sqlite_store.get_by_number(30).balance == Decimal("100")
    assert sqlite_store.get_by_number(31).balance == Decimal("0")
    assert sqlite_store.transactions() == []


def test_unopenable_database_is_a_store_failure(tmp_path):
    store = SQLiteAccountStore(str(tmp_path))  # a directory, not a file
    with pytest.raises(StoreFailure):
        store.get_by_number(1)


def test_store_survives_reopen(tmp_path):
    path = str(tmp_path / "bank.db")
    first = SQLiteAccountStore(path)
    first.init()
    first.create(new_account(50))
    first.set_balance(50, Decimal("8.88"))

    second = SQLiteAccountStore(path)
    second.init()
    assert second.get_by_number(50).balance == Decimal("8.88")
