import sys
from loguru import logger
from alertbridge.core.config import settings

def setup_logging():
    log_settings = settings.logging
    logger.remove()

    # Console Handler
    logger.add(
        sys.stderr,
        format=log_settings.format,
        level=log_settings.level,
        colorize=True,
    )

    if not log_settings.file_enabled:
        logger.info("Logging initialized (console only)")
        return

    # File Handler (JSON for structured logging, keeps bound context)
    logger.add(
        log_settings.file_path,
        rotation=log_settings.file_rotation,
        retention=log_settings.file_retention,
        compression="zip",
        serialize=True,
        level=log_settings.level,
    )

    # Error File Handler
    logger.add(
        log_settings.error_file_path,
        rotation=log_settings.file_rotation,
        retention=log_settings.file_retention,
        level="ERROR",
        backtrace=True,
        diagnose=False,
    )

    logger.info("Logging initialized")
