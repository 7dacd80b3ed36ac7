from __future__ import annotations

import logging

from solveur.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_HANDLER_NAME = "solveur"


def configure_logging() -> None:
    # Install a single stream handler; repeated app factories must not duplicate output.
    settings = get_settings()
    root = logging.getLogger()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)
    if any(getattr(handler, "name", None) == _HANDLER_NAME for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    # httpx logs every request at INFO; keep provider traffic out of the app log.
    logging.getLogger("httpx").setLevel(logging.WARNING)
