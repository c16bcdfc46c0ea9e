from loguru import logger
from goalpush.core.db import engine, Base

# Import all models so SQLAlchemy registers them
from goalpush.models.push_token import DeviceToken  # noqa: F401
from goalpush.models.push_receipt import PushReceipt  # noqa: F401
from goalpush.models.rate_limit import PushRateLimit  # noqa: F401

def init_db():
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
