import logging
import os
import sys
from typing import Optional, Union
from flask import Flask

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(app_name: Union[str, Flask] = "coupleclarity", log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application

    Args:
        app_name: Name of the application for the logger or Flask app instance
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                  If None, the app's LOG_LEVEL setting, then the LOG_LEVEL
                  environment variable, then INFO is used

    Returns:
        Configured logger instance
    """
    if isinstance(app_name, Flask):
        logger_name = app_name.import_name
        if log_level is None:
            log_level = app_name.config.get("LOG_LEVEL")
    else:
        logger_name = str(app_name)

    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    # The package logger is the parent of every module logger in the app
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
