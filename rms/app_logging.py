import logging
from typing import Union

from pythonjsonlogger import jsonlogger

TEXT_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(level: Union[int, str] = logging.INFO,
                 fmt: str = 'json') -> logging.Logger:
    """Send log records of the whole process to stderr."""
    logHandler = logging.StreamHandler()
    if fmt == 'json':
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            TEXT_FORMAT,
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)
    logHandler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(logHandler)
    logger.setLevel(level)
    return logger
