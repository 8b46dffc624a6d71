"""
Logging configuration.

Configures the root logger once at application creation. Modules log
through ``logging.getLogger(__name__)``.
"""

import logging


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
