import os

import uvicorn

# The entrypoint logs verbosely unless told otherwise; app.py configures logging on import
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from app import app  # noqa: E402,F401
from constants import ENVIRONMENT, HOST, PORT  # noqa: E402
from logging_config import get_logger  # noqa: E402

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting room chat server on {HOST}:{PORT} ({ENVIRONMENT})")
    uvicorn.run("app:app", host=HOST, port=PORT, reload=ENVIRONMENT == "development")
