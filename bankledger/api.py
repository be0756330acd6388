import logging
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, Request
from pydantic import BaseModel, Field

from .accounts import AccountService
from .auth import AuthGateway
from .domain import MAX_ACCOUNT_NUMBER, Account
from .engine import TransactionEngine

log = logging.getLogger("api")
router = APIRouter()

AccountNumber = Annotated[int, Field(ge=0, le=MAX_ACCOUNT_NUMBER, description="Public account number")]
AccountId = Path(..., ge=1, description="Internal account id")


class LoginBody(BaseModel):
    account_number: AccountNumber
    password: str = Field(..., min_length=1)


class CreateAccountBody(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    # generated when omitted
    account_number: AccountNumber | None = None


class MoneyBody(BaseModel):
    account_number: AccountNumber
    # sign is checked by the engine so <= 0 reports INVALID_AMOUNT, not a schema error
    amount: Decimal


class TransferBody(BaseModel):
    to_account: AccountNumber
    amount: Decimal
    # defaults to the caller's own account
    from_account: AccountNumber | None = None


# ---- dependencies ----
def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


def get_engine(request: Request) -> TransactionEngine:
    return request.app.state.engine


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_caller(
    authorization: str | None = Header(None),
    gateway: AuthGateway = Depends(get_gateway),
) -> Account:
    return gateway.resolve_caller(authorization)


# ---- routes ----
@router.get("/")
def root():
    return {"status": "ok", "message": "Welcome to the bank ledger API", "docs": "/docs"}


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/login")
def login(body: LoginBody, accounts: AccountService = Depends(get_accounts)):
    return accounts.login(body.account_number, body.password).public()


@router.get("/account")
def list_accounts(accounts: AccountService = Depends(get_accounts)):
    return [a.public() for a in accounts.list_accounts()]


@router.post("/account")
def create_account(body: CreateAccountBody, accounts: AccountService = Depends(get_accounts)):
    log.info("Creating account for %s %s", body.first_name, body.last_name)
    account = accounts.create_account(body.first_name, body.last_name, body.password, body.account_number)
    return account.public()


@router.get("/account/{account_id}")
def get_account(
    account_id: int = AccountId,
    caller: Account = Depends(get_caller),
    accounts: AccountService = Depends(get_accounts),
):
    return accounts.get_account(account_id, caller).public()


@router.delete("/account/{account_id}")
def delete_account(
    account_id: int = AccountId,
    caller: Account = Depends(get_caller),
    accounts: AccountService = Depends(get_accounts),
):
    accounts.delete_account(account_id, caller)
    return {"deleted": account_id}


@router.get("/account/{account_id}/transactions")
def account_transactions(
    account_id: int = AccountId,
    caller: Account = Depends(get_caller),
    accounts: AccountService = Depends(get_accounts),
    engine: TransactionEngine = Depends(get_engine),
):
    account = accounts.get_account(account_id, caller)
    return [t.public() for t in engine.history(account.account_number, caller)]


@router.post("/deposit")
def deposit(body: MoneyBody, caller: Account = Depends(get_caller), engine: TransactionEngine = Depends(get_engine)):
    return engine.deposit(body.account_number, body.amount, caller).public()


@router.post("/withdraw")
def withdraw(body: MoneyBody, caller: Account = Depends(get_caller), engine: TransactionEngine = Depends(get_engine)):
    return engine.withdraw(body.account_number, body.amount, caller).public()


@router.post("/transfer")
def transfer(body: TransferBody, caller: Account = Depends(get_caller), engine: TransactionEngine = Depends(get_engine)):
    source = caller.account_number if body.from_account is None else body.from_account
    return engine.transfer(source, body.to_account, body.amount, caller).public()
