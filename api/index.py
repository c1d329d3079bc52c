from dotenv import load_dotenv

load_dotenv()

from cougarcs.config.config import AppConfig
from cougarcs.config.logging_config import configure_logging
from cougarcs.server.bootstrap import build_app

# ASGI app for the Vercel Python runtime.
_cfg = AppConfig()
configure_logging(_cfg.log_level)
app = build_app(_cfg)
