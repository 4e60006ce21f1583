# order_lifecycle/main.py
import uvicorn

from order_lifecycle.api import create_app
from order_lifecycle.data.database import Base, engine
from order_lifecycle.data import models  # noqa: F401  registers every table on Base.metadata
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)

logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
except Exception as e:
    logger.error(f"Failed to create tables: {e}")
    raise


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
