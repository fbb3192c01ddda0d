"""Logging configuration for the scoring service."""
import logging
import os


def setup_logging(level=None):
    """Configure the root logger; LOG_LEVEL overrides the default INFO."""
    level = level or os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )
    return logging.getLogger("flagwatch")
