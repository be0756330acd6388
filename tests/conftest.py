# tests/conftest.py
import os
import tempfile

import pytest
from starlette.testclient import TestClient

from bankledger.app import create_app
from bankledger.db import SQLiteAccountStore
from bankledger.domain import Account
from bankledger.store import InMemoryAccountStore


@pytest.fixture(scope="session")
def tmp_db_path():
    with tempfile.TemporaryDirectory() as d:
        yield os.path.join(d, "test.sqlite3")  # removed automatically


@pytest.fixture(scope="session")
def sqlite_store(tmp_db_path):
    store = SQLiteAccountStore(tmp_db_path)  # <-- TEST-ONLY DB
    store.init()
    return store


@pytest.fixture(autouse=True)
def clean_db(sqlite_store):
    sqlite_store.truncate_all()  # isolation between tests
    yield
    sqlite_store.truncate_all()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, sqlite_store):
    if request.param == "memory":
        return InMemoryAccountStore()
    return sqlite_store


@pytest.fixture(scope="session")
def app(sqlite_store):
    return create_app(sqlite_store)


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def open_account(store):
    """Create an account directly in the store (no password hashing) and seed its balance."""
    def _open(number: int, balance=0, first="Test", last="Holder") -> Account:
        store.create(Account(first_name=first, last_name=last, account_number=number, password_hash="unused"))
        return store.set_balance(number, balance)
    return _open
