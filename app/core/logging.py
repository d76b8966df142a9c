import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar

# Set by RequestIdMiddleware for the lifetime of a request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
# Set by the claims resolver once a token has been validated
principal_var: ContextVar[str | None] = ContextVar("principal", default=None)

LOG_FORMAT = "%(levelname)-6s [%(request_id)s] [%(principal)s] {%(relativepath)s:%(lineno)s} (%(funcName)s) %(message)s"


class RequestContextFilter(logging.Filter):
    """Copies the request id and authenticated subject onto every record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.principal = principal_var.get() or "anonymous"
        return True


def _relative_path(record: logging.LogRecord) -> str:
    try:
        return os.path.relpath(record.pathname, start=os.getcwd())
    except ValueError:
        return record.pathname


class ColorLevelFormatter(logging.Formatter):
    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[94m",
        logging.INFO: "\033[92m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[95m",
    }
    PATH_COLOR = "\033[96m"

    def __init__(self, fmt=None, datefmt=None, *, colorize=False):
        super().__init__(fmt, datefmt)
        self.colorize = colorize

    def format(self, record: logging.LogRecord) -> str:
        record.relativepath = _relative_path(record)
        if not self.colorize:
            return super().format(record)
        # Colour a copy so the file handler still sees plain text
        colored = logging.makeLogRecord(record.__dict__)
        level_color = self.COLORS.get(record.levelno, self.RESET)
        colored.levelname = f"{level_color}{record.levelname}{self.RESET}"
        colored.relativepath = f"{self.PATH_COLOR}{record.relativepath}{self.RESET}"
        return super().format(colored)


class RelativePathFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.relativepath = _relative_path(record)
        return super().format(record)


def get_logger(
    name: str = "sustainability",
    log_dir: str = "logs",
    log_file: str = "app.log",
    level: int = None,
    stream: bool = True,
) -> logging.Logger:
    """Configure and return a logger whose records carry request id and principal.

    Child loggers (``sustainability.services.x``) propagate to the configured
    parent, so only the root application logger gets handlers:

    - a timed rotating file handler (midnight, 7 backups)
    - a console handler, coloured unless ``COLOR_LOGGING=false``
    """
    root_name = name.split(".")[0]
    if root_name != name:
        get_logger(root_name, log_dir=log_dir, log_file=log_file, level=level, stream=stream)
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level or os.getenv("LOG_LEVEL", "DEBUG").upper())

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, log_file)

    context_filter = RequestContextFilter()

    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path, when="midnight", interval=1, backupCount=7, encoding="utf-8"
    )
    file_handler.setFormatter(RelativePathFormatter("%(asctime)s  " + LOG_FORMAT, datefmt="%d-%m-%Y %H:%M:%S"))
    file_handler.addFilter(context_filter)
    logger.addHandler(file_handler)

    if stream:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            ColorLevelFormatter(LOG_FORMAT, colorize=os.getenv("COLOR_LOGGING", "true").lower() == "true")
        )
        console_handler.addFilter(context_filter)
        logger.addHandler(console_handler)

    logger.propagate = False

    return logger
