import os

# Read at call time so tests (and re-forked workers) can repoint the service via env.


def db_path() -> str:
    return os.environ.get("BANK_DB_PATH", os.path.join(os.getcwd(), "data", "bank.db"))


def db_timeout() -> float:
    return float(os.environ.get("BANK_DB_TIMEOUT", "30"))


def jwt_secret() -> str:
    return os.environ.get("JWT_SECRET", "dev-secret-change")


def jwt_issuer() -> str:
    return os.environ.get("JWT_ISSUER", "bankledger")


def token_ttl_seconds() -> int:
    # 15 minutes
    return int(os.environ.get("BANK_TOKEN_TTL_SECONDS", "900"))


def log_level() -> str:
    return os.environ.get("BANK_LOG_LEVEL", "INFO").upper()


def log_dir() -> str | None:
    return os.environ.get("BANK_LOG_DIR") or None


def seed_demo() -> bool:
    return os.environ.get("BANK_SEED_DEMO") == "1"


def listen_host() -> str:
    return os.environ.get("BANK_HOST", "0.0.0.0")


def listen_port() -> int:
    return int(os.environ.get("BANK_PORT", "8080"))
