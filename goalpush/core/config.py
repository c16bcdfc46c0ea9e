import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./goalpush.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")

# Empty means "not configured"; sends fail fast with ConfigurationError
EXPO_ACCESS_TOKEN = _get_env("EXPO_ACCESS_TOKEN", "") or None
EXPO_PUSH_URL = _get_env("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_RECEIPTS_URL = _get_env("EXPO_RECEIPTS_URL", "https://exp.host/--/api/v2/push/getReceipts")

WEBHOOK_SECRET = _get_env("WEBHOOK_SECRET", "") or None
MAINTENANCE_INTERVAL_SECONDS = int(_get_env("MAINTENANCE_INTERVAL_SECONDS", "900"))

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, LOG_LEVEL={LOG_LEVEL}, "
    f"expo_token_set={EXPO_ACCESS_TOKEN is not None}"
)
