'''
universal logger
'''
# In src/tutor_billing/common/logger.py
import logging
import sys

from .config import settings

def setup_logger():
    """
    Configures and returns the root logger for the billing engine.
    """
    logger = logging.getLogger('TB-engine')
    logger.setLevel(settings.LOG_LEVEL.upper())

    handler = logging.StreamHandler(sys.stdout)

    formatter = logging.Formatter(
        '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'
    )
    handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(handler)

    return logger

# Create a single logger instance to be imported by other modules
log = setup_logger()
