import inspect
import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (uvicorn, SQLAlchemy) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that issued the logged message
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(filename: str, *, level: str = "INFO") -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(f"logs/{filename}", level=level, rotation="10 MB", retention="14 days", enqueue=True)
