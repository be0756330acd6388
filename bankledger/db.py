import logging
import os
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List

from . import config
from .domain import ZERO, Account, Transaction, TransactionKind, add_exact
from .errors import AccountNotEmpty, DuplicateKey, NotFound, StoreFailure
from .store import AccountStore, AtomicUnit

log = logging.getLogger("db")

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id             INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name     TEXT NOT NULL,
        last_name      TEXT NOT NULL,
        account_number INTEGER NOT NULL UNIQUE,
        balance        TEXT NOT NULL,
        password_hash  TEXT NOT NULL,
        created_at     TEXT NOT NULL
    )
    """,
    # source/destination are soft references by account number: no FK, rows outlive the account
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        source      INTEGER NULL,
        destination INTEGER NULL,
        kind        TEXT NOT NULL CHECK (kind IN ('deposit', 'withdraw', 'transfer')),
        amount      TEXT NOT NULL,
        created_at  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_transactions_source ON transactions(source)",
    "CREATE INDEX IF NOT EXISTS ix_transactions_destination ON transactions(destination)",
)

ACCOUNT_COLUMNS = "id, first_name, last_name, account_number, balance, password_hash, created_at"


def _ensure_parent_dir(path: str):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _open_conn(path: str) -> sqlite3.Connection:
    _ensure_parent_dir(path)
    # autocommit; we control BEGIN/COMMIT in ops
    conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None, timeout=config.db_timeout())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        account_number=row["account_number"],
        balance=Decimal(row["balance"]),
        password_hash=row["password_hash"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        kind=TransactionKind(row["kind"]),
        amount=Decimal(row["amount"]),
        source=row["source"],
        destination=row["destination"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _fetch_account(conn: sqlite3.Connection, column: str, value: int) -> sqlite3.Row | None:
    try:
        return conn.execute(f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE {column}=?", (value,)).fetchone()
    except OverflowError:
        # beyond the INTEGER range no row can match
        return None


def _rollback(conn: sqlite3.Connection):
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        # nothing left to undo when BEGIN/COMMIT itself failed
        log.warning("db.rollback failed", exc_info=True)


class _SQLiteUnit(AtomicUnit):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def lock(self, account_number: int) -> Account:
        row = _fetch_account(self.conn, "account_number", account_number)
        if row is None:
            raise NotFound(f"Account with number {account_number} not found")
        return _row_to_account(row)

    def adjust_balance(self, account_number: int, delta: Decimal) -> None:
        new_bal = add_exact(self.lock(account_number).balance, delta)
        self.conn.execute(
            "UPDATE accounts SET balance=? WHERE account_number=?", (str(new_bal), account_number)
        )

    def append(self, txn: Transaction) -> Transaction:
        cur = self.conn.execute(
            "INSERT INTO transactions (source, destination, kind, amount, created_at) VALUES (?, ?, ?, ?, ?)",
            (txn.source, txn.destination, txn.kind.value, str(txn.amount), txn.created_at.isoformat()),
        )
        return replace(txn, id=cur.lastrowid)


class SQLiteAccountStore(AccountStore):
    """Account store on a SQLite file; every write runs under BEGIN IMMEDIATE."""

    def __init__(self, path: str | None = None):
        self.path = path or config.db_path()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(_open_conn(self.path)) as conn:
                yield conn
        except sqlite3.Error as e:
            log.error("db error path=%s: %s", self.path, e)
            raise StoreFailure(f"storage error: {e}") from e

    def init(self):
        with self._conn() as conn:
            for stmt in SCHEMA:
                conn.execute(stmt)
        log.info("DB schema ready at %s", self.path)

    def truncate_all(self):
        with self._conn() as conn:
            conn.execute("DELETE FROM transactions")
            conn.execute("DELETE FROM accounts")

    def create(self, account: Account) -> Account:
        with self._conn() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO accounts (first_name, last_name, account_number, balance, password_hash, created_at)"
                    " VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        account.first_name,
                        account.last_name,
                        account.account_number,
                        str(ZERO),
                        account.password_hash,
                        account.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                log.info("db.create conflict number=%s", account.account_number)
                raise DuplicateKey(f"Account {account.account_number} already exists") from e
            log.info("db.create id=%s number=%s", cur.lastrowid, account.account_number)
            return self._get(conn, "id", cur.lastrowid)

    def _get(self, conn: sqlite3.Connection, column: str, value: int) -> Account:
        row = _fetch_account(conn, column, value)
        if row is None:
            label = "number" if column == "account_number" else column
            raise NotFound(f"Account with {label} {value} not found")
        return _row_to_account(row)

    def get_by_number(self, account_number: int) -> Account:
        with self._conn() as conn:
            return self._get(conn, "account_number", account_number)

    def get_by_id(self, account_id: int) -> Account:
        with self._conn() as conn:
            return self._get(conn, "id", account_id)

    def list(self) -> List[Account]:
        with self._conn() as conn:
            rows = conn.execute(f"SELECT {ACCOUNT_COLUMNS} FROM accounts ORDER BY id").fetchall()
            return [_row_to_account(r) for r in rows]

    def delete(self, account_id: int) -> None:
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                acct = self._get(conn, "id", account_id)
                if acct.balance != ZERO:
                    raise AccountNotEmpty(f"Account {acct.account_number} still holds {acct.balance}")
                conn.execute("DELETE FROM accounts WHERE id=?", (account_id,))
                conn.execute("COMMIT")
            except BaseException:
                _rollback(conn)
                raise
            log.info("db.delete id=%s number=%s", account_id, acct.account_number)

    def set_balance(self, account_number: int, new_balance: Decimal) -> Account:
        with self._conn() as conn:
            self._get(conn, "account_number", account_number)
            conn.execute(
                "UPDATE accounts SET balance=? WHERE account_number=?", (str(Decimal(new_balance)), account_number)
            )
            log.info("db.set_balance number=%s new=%s", account_number, new_balance)
            return self._get(conn, "account_number", account_number)

    def transactions(self, account_number: int | None = None) -> List[Transaction]:
        with self._conn() as conn:
            if account_number is None:
                rows = conn.execute("SELECT * FROM transactions ORDER BY id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM transactions WHERE source=? OR destination=? ORDER BY id",
                    (account_number, account_number),
                ).fetchall()
            return [_row_to_transaction(r) for r in rows]

    @contextmanager
    def atomic(self) -> Iterator[AtomicUnit]:
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield _SQLiteUnit(conn)
                conn.execute("COMMIT")
            except BaseException:
                _rollback(conn)
                raise


def seed_if_empty(store: AccountStore, password_hash: str) -> None:
    """Insert demo accounts if the store is empty (used for local dev/demo)."""
    if store.list():
        return
    rows = [
        ("Ada", "Lovelace", 100001, Decimal("10500.00")),
        ("Alan", "Turing", 100002, Decimal("12015.00")),
        ("Grace", "Hopper", 100003, Decimal("5040.00")),
    ]
    for first, last, number, balance in rows:
        store.create(Account(first_name=first, last_name=last, account_number=number, password_hash=password_hash))
        store.set_balance(number, balance)
    log.info("DB seed inserted %d demo accounts", len(rows))
