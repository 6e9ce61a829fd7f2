import os

from dotenv import load_dotenv

load_dotenv(encoding="utf-8")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATABASE_URL = os.getenv("DATABASE_URL")

CORS_ORIGINS = [
    o.strip()
    for o in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# Rules
DEFAULT_RULE_PRIORITY = _int_env("DEFAULT_RULE_PRIORITY", 100)

# customer_inactive sweep
INACTIVE_DEFAULT_COOLDOWN_DAYS = _int_env("INACTIVE_DEFAULT_COOLDOWN_DAYS", 30)
INACTIVE_SWEEP_BATCH_SIZE = _int_env("INACTIVE_SWEEP_BATCH_SIZE", 500)
SWEEP_INTERVAL_SECONDS = _int_env("SWEEP_INTERVAL_SECONDS", 3600)
