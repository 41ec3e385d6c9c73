import logging
import os

from config import LOG_LEVEL, LOG_DIR

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = LOG_LEVEL, log_dir: str = LOG_DIR):
    """Console logging, plus server.log / errors.log when a log dir is set."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    root = logging.getLogger()
    if not log_dir:
        return
    os.makedirs(log_dir, exist_ok=True)
    existing = {getattr(h, "baseFilename", None) for h in root.handlers}
    for filename, handler_level in (("server.log", logging.NOTSET), ("errors.log", logging.ERROR)):
        path = os.path.abspath(os.path.join(log_dir, filename))
        if path in existing:
            continue
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(handler_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
