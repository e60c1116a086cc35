from loguru import logger
import sys, pathlib
from typing import Optional
from docchat.core.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None):
    settings = settings or get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper(), backtrace=True, diagnose=False, enqueue=True)
    # File sink for persistent pipeline diagnostics
    if settings.log_dir:
        log_dir = pathlib.Path(settings.log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"File logging disabled, cannot create {log_dir}: {e}")
            return logger
        logger.add(str(log_dir / "pipeline.log"), level=settings.log_level.upper(), rotation="5 MB", retention=5, enqueue=True, backtrace=False, diagnose=False)
    return logger
