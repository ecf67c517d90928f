import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

_LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"
_DATE_FORMAT = "%H:%M:%S"


def _build_file_handler(log_path: str) -> RotatingFileHandler:
    formatter = logging.Formatter(_LOG_FORMAT, _DATE_FORMAT)
    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    file_handler.name = "roomscribe_file"
    return file_handler


def _build_stream_handler() -> logging.StreamHandler:
    formatter = logging.Formatter(_LOG_FORMAT, _DATE_FORMAT)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.INFO)
    stream_handler.name = "roomscribe_stream"
    return stream_handler


def _replace_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    for handler in list(logger.handlers):
        if handler.name in ("roomscribe_file", "roomscribe_stream"):
            logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def configure_logging(logs_dir: str) -> str:
    """Send every logger to a rotating file in ``logs_dir`` and to stderr.

    Safe to call more than once; handlers installed by an earlier call are
    replaced rather than stacked.
    """
    os.makedirs(logs_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_path = os.path.join(logs_dir, f"server_{timestamp}.log")

    file_handler = _build_file_handler(log_path)
    stream_handler = _build_stream_handler()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    _replace_handlers(root_logger, [file_handler, stream_handler])

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.setLevel(logging.INFO)
        _replace_handlers(uv_logger, [file_handler, stream_handler])
        uv_logger.propagate = False

    root_logger.info("Logging initialized: %s", log_path)
    return log_path
