import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# third-party loggers that are too chatty at the app's level
QUIET_LOGGERS = ("multipart", "httpx")


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Send every judgeboard log line to stdout, replacing any earlier setup."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("judgeboard")
