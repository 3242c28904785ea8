# mockexam/core/logging_config.py
import logging

from mockexam.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once for the API process or a worker."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # httpx logs every request line at INFO, including the key query param
    logging.getLogger("httpx").setLevel(logging.WARNING)
