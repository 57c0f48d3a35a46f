# utils/logger.py
import os
import logging
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(
    logger_name: str,
    log_file: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = "logs"
) -> logging.Logger:
    """
    Set up and return a logger with console and (optionally) file handlers.

    Child loggers such as "HeartPipeline.Silver" inherit the handlers of
    "HeartPipeline", so the pipeline configures the parent once.

    Args:
        logger_name: Name of the logger
        log_file: Optional specific log filename (default: {logger_name}.log)
        level: Logging level as an int or a name such as "DEBUG" (default: INFO)
        log_dir: Directory for log files (default: logs); None logs to the console only

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates if logger already exists
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        if log_file is None:
            log_file = f"{logger_name.lower().replace(' ', '_')}.log"
        log_path = os.path.join(log_dir, log_file)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.info(f"Log file is being saved to: {os.path.abspath(log_path)}")

    return logger
