"""
Logging setup — console plus a rotating file under LOG_DIR.
"""
import logging
import logging.handlers
import os

from app.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Attach handlers to the root logger. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())

    if getattr(root, "_venue_payments_configured", False):
        return

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(settings.LOG_DIR, "server.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # SQL echo goes through its own logger when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
    root._venue_payments_configured = True
