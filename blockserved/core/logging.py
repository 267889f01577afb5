import logging
import sys
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger

from blockserved.core.config import Settings

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine", "passlib")


def configure_logging(settings: Settings, stream: Optional[TextIO] = None) -> None:
    """
    One JSON object per line, tagged with the app name and environment.

    The service logs to stdout. The repair CLI passes stderr so its JSON
    report stays alone on stdout.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"app": settings.app_name, "env": settings.environment},
    ))
    root.addHandler(handler)

    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
