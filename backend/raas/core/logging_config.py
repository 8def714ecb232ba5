"""
Logging setup for the service process.
"""
import logging

from raas.core.config import Settings, settings as default_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings = None) -> None:
    """Apply LOG_LEVEL to the root logger."""
    settings = settings or default_settings
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # docker SDK and urllib3 are noisy at debug
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
    logging.getLogger("docker").setLevel(max(level, logging.INFO))
