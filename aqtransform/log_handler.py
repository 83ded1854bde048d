import logging
import logging.config
import sys
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Third-party loggers that flood the output at INFO/DEBUG
NOISY_LOGGERS = [
    'asyncio',
    'httpx',
    'httpcore',
    'pyproj',
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogHandler:
    """Start logging from the ``logging`` section of the runtime config, or with a basic stdout setup."""

    def __init__(self, config: Dict[str, Any] | None = None):
        self.config = config

    def _start_basic_logger(self, verbose: bool = False):
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=LOG_FORMAT,
            datefmt=DATE_FORMAT,
            stream=sys.stdout,
        )

    def start_logger(self, verbose: bool = False):
        """
        Apply the logging configuration.

        Parameters
        ----------
        verbose : bool, optional
            Log at DEBUG level and keep third-party loggers at their own level.
        """
        if self.config:
            logging.config.dictConfig(self.config)
            logger.debug("Loaded logging configuration")
        else:
            self._start_basic_logger(verbose=verbose)
            logger.debug("Using default logging configuration")

        if verbose:
            logging.getLogger('aqtransform').setLevel(logging.DEBUG)
        else:
            self.silence_noisy_loggers()

    def silence_noisy_loggers(self, log_level=logging.WARNING):
        logger.debug('Silencing noisy loggers')
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(log_level)
