import sys
from loguru import logger
from goalpush.core.config import LOG_LEVEL

def setup_logging() -> None:
    logger.remove()

    logger.add(
        sys.stdout,
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}"
    )

    logger.add(
        "logs/app.log",
        rotation="10 MB",
        retention="14 days",
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}"
    )

    logger.info("Logging initialized")


def short_token(token: str) -> str:
    """Expo tokens are credentials for a device; never log them whole."""
    if len(token) <= 24:
        return token
    return f"{token[:22]}…]"
