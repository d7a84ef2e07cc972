import logging
import sys
from pathlib import Path
from datetime import datetime
import logging.handlers
from typing import Optional

from biolink.config import settings

# Shown for records that carry no link context (library and startup logs)
NO_ENDPOINT = "-"

class ConnectionLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that tags every record with the endpoint of its link.

    Explicit ``extra={'endpoint': ...}`` values win over the adapter's own.
    """
    def __init__(self, logger, endpoint=None):
        super().__init__(logger, {'endpoint': endpoint or NO_ENDPOINT})

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        return msg, kwargs

class EndpointFilter(logging.Filter):
    """Give records from plain loggers an endpoint so the format always applies."""

    def filter(self, record):
        if not hasattr(record, 'endpoint'):
            record.endpoint = NO_ENDPOINT
        return True

class ColoredFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.
    """
    COLORS = {
        'DEBUG': '\033[94m',     # Blue
        'INFO': '\033[92m',      # Green
        'WARNING': '\033[93m',   # Yellow
        'ERROR': '\033[91m',     # Red
        'CRITICAL': '\033[91m\033[1m',  # Bold Red
        'RESET': '\033[0m'       # Reset
    }

    def __init__(self, *args, is_console=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.is_console = is_console

    def format(self, record):
        if not self.is_console or record.levelname not in self.COLORS:
            return super().format(record)
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)

def _make_handler(handler: logging.Handler, level: int, for_console: bool = False) -> logging.Handler:
    handler.setLevel(level)
    handler.addFilter(EndpointFilter())
    handler.setFormatter(ColoredFormatter(settings.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S',
                                          is_console=for_console))
    return handler

def setup_logging() -> logging.Logger:
    """
    Set up logging for the monitor.

    Console output is colored; file output goes to a daily log plus a
    warnings-and-above log under ``LOG_DIR``.

    Returns:
        logging.Logger: Configured application logger
    """
    level_name = str(settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if settings.LOG_TO_CONSOLE:
        root_logger.addHandler(
            _make_handler(logging.StreamHandler(sys.stdout), log_level, for_console=True))

    log_dir = Path(settings.LOG_DIR)
    if settings.LOG_TO_FILE:
        try:
            log_dir.mkdir(exist_ok=True, parents=True)
            stamp = datetime.now().strftime('%Y%m%d')

            root_logger.addHandler(_make_handler(
                logging.handlers.TimedRotatingFileHandler(
                    log_dir / f"biolink_{stamp}.log",
                    when='midnight', backupCount=7, encoding='utf-8'),
                log_level))
            root_logger.addHandler(_make_handler(
                logging.handlers.TimedRotatingFileHandler(
                    log_dir / f"biolink_errors_{stamp}.log",
                    when='midnight', backupCount=7, encoding='utf-8'),
                logging.WARNING))
        except OSError as e:
            print(f"Warning: Could not set up file logging: {str(e)}. Using console logging only.")

    # Suppress excessive logging from libraries
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("biolink")
    logger.debug("Logging initialized. Log directory: %s", log_dir)

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Uncaught exception",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler

    return logger

def get_logger(name: str, endpoint: Optional[str] = None) -> ConnectionLoggerAdapter:
    """
    Get a logger whose records carry the given link endpoint.

    Args:
        name: Logger name, typically module name
        endpoint: Endpoint address of the link, if the logger belongs to one

    Returns:
        ConnectionLoggerAdapter: Adapter tagging records with ``endpoint``
    """
    return ConnectionLoggerAdapter(logging.getLogger(name), endpoint)
