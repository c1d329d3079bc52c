import logging
import os

ACCESS_LOGGER_NAME = "cougarcs.http"
ERROR_LOGGER_NAME = "cougarcs.server.errors"


def configure_logging(level: str | None = None) -> logging.Logger:
	level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
	logging.basicConfig(level=level_name, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
	return logging.getLogger()


def get_access_logger() -> logging.Logger:
	return logging.getLogger(ACCESS_LOGGER_NAME)
