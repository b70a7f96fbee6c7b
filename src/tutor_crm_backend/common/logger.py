'''
Application logger, imported everywhere as `log`.
'''
import logging
import sys

from .config import settings

def setup_logger() -> logging.Logger:
    """
    Configures the 'CRM-backend' logger: stdout, level from LOG_LEVEL,
    module name on every record.
    """
    logger = logging.getLogger('CRM-backend')
    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'
    )
    handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(handler)

    # SQL statements are only interesting when debugging.
    logging.getLogger('sqlalchemy.engine').setLevel(
        logging.INFO if settings.LOG_SQL else logging.WARNING
    )
    return logger

log = setup_logger()
