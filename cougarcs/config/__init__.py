from .config import AppConfig, read_env
from .logging_config import configure_logging, get_access_logger

__all__ = ["AppConfig", "configure_logging", "get_access_logger", "read_env"]
