import logging
import secrets

from . import security
from .auth import AuthGateway
from .domain import Account, Credential
from .errors import DuplicateKey, Forbidden
from .store import AccountStore

log = logging.getLogger("accounts")

ACCOUNT_NUMBER_SPACE = 1_000_000
GENERATE_ATTEMPTS = 5


class AccountService:
    def __init__(self, store: AccountStore, gateway: AuthGateway | None = None):
        self.store = store
        self.gateway = gateway or AuthGateway(store)

    def create_account(self, first_name: str, last_name: str, password: str,
                       account_number: int | None = None) -> Account:
        password_hash = security.hash_password(password)
        if account_number is not None:
            account = self.store.create(Account(first_name, last_name, account_number, password_hash))
        else:
            account = self._create_with_generated_number(first_name, last_name, password_hash)
        log.info("create_account id=%s number=%s", account.id, account.account_number)
        return account

    def _create_with_generated_number(self, first_name: str, last_name: str, password_hash: str) -> Account:
        for attempt in range(1, GENERATE_ATTEMPTS + 1):
            number = secrets.randbelow(ACCOUNT_NUMBER_SPACE)
            try:
                return self.store.create(Account(first_name, last_name, number, password_hash))
            except DuplicateKey:
                log.info("generated account number %s taken (attempt %d)", number, attempt)
        raise DuplicateKey("could not allocate a free account number")

    def login(self, account_number: int, password: str) -> Credential:
        account = self.gateway.authenticate(account_number, password)
        credential = self.gateway.issue(account)
        log.info("login number=%s expires_at=%s", account_number, credential.expires_at.isoformat())
        return credential

    @staticmethod
    def _authorize_id(caller: Account, account_id: int) -> None:
        # compared before any lookup so callers cannot probe which ids exist
        if caller.id != account_id:
            log.warning("forbidden: caller id=%s target id=%s", caller.id, account_id)
            raise Forbidden(f"not allowed to access account id {account_id}")

    def get_account(self, account_id: int, caller: Account) -> Account:
        self._authorize_id(caller, account_id)
        return self.store.get_by_id(account_id)

    def list_accounts(self) -> list[Account]:
        return self.store.list()

    def delete_account(self, account_id: int, caller: Account | None = None) -> None:
        if caller is not None:
            self._authorize_id(caller, account_id)
        self.store.delete(account_id)
        log.info("delete_account id=%s", account_id)
