import logging
import os

# Set STATECRAFT_LOG_FILE to capture the simulation trace in a file instead of
# letting records flow to the root logger.
LOG_FILE_ENV = "STATECRAFT_LOG_FILE"
LOG_FORMAT = '%(asctime)s - %(name)s - %(message)s'


def setup_logger(name="statecraft", log_file=None, level=logging.INFO):
    """
    Sets up the simulation logger. With a log file it writes only to that file.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    log_file = log_file or os.environ.get(LOG_FILE_ENV)

    # Check if handler already exists to avoid duplicate logs
    if log_file and not logger.handlers:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

        # Prevent propagation to the root logger to avoid printing to stdout
        logger.propagate = False

    return logger


def get_logger(module_name):
    """Child logger of the simulation logger for a module."""
    return logging.getLogger(f"statecraft.{module_name}")
