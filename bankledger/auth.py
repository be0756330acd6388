import logging
from datetime import datetime, timezone

import jwt

from . import security
from .domain import Account, Credential
from .errors import Forbidden, InvalidCredentials, NotFound, Unauthenticated
from .store import AccountStore

log = logging.getLogger("auth")

BEARER = "Bearer "


class AuthGateway:
    """Checks credentials and resolves bearer tokens to the calling account."""

    def __init__(self, store: AccountStore):
        self.store = store

    def authenticate(self, account_number: int, password: str) -> Account:
        # unknown number and wrong password are reported the same way
        try:
            account = self.store.get_by_number(account_number)
        except NotFound:
            log.info("authenticate: unknown account %s", account_number)
            raise InvalidCredentials() from None
        if not security.verify_password(password, account.password_hash):
            log.info("authenticate: bad password for account %s", account_number)
            raise InvalidCredentials()
        return account

    def issue(self, account: Account, ttl_seconds: int | None = None) -> Credential:
        token, exp = security.mint_account_jwt(account.account_number, ttl_seconds)
        return Credential(
            token=token,
            account_number=account.account_number,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )

    def resolve_caller(self, token: str | None) -> Account:
        if not token:
            raise Unauthenticated("missing bearer token")
        if token.startswith(BEARER):
            token = token[len(BEARER):]
        try:
            claims = security.verify_token(token)
            account_number = int(claims["account_number"])
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("token expired") from None
        except (jwt.PyJWTError, KeyError, TypeError, ValueError):
            raise Unauthenticated("invalid token") from None
        try:
            return self.store.get_by_number(account_number)
        except NotFound:
            log.info("resolve_caller: token names missing account %s", account_number)
            raise Unauthenticated("unknown account") from None

    @staticmethod
    def authorize_self(caller: Account, account_number: int) -> None:
        if caller.account_number != account_number:
            log.warning("forbidden: caller=%s target=%s", caller.account_number, account_number)
            raise Forbidden(f"account {caller.account_number} may not act on account {account_number}")
