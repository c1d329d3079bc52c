from .bootstrap import build_app, build_services
from .http import create_app

__all__ = ["build_app", "build_services", "create_app"]
