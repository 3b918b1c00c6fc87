"""Package-wide logger used by the clustering components and pipelines."""

import logging
import sys

# Configure the formatting of the logger
logging.basicConfig(format="[%(levelname)s][%(name)s] %(message)s", stream=sys.stdout)

# Initialize logger
logger = logging.getLogger("imcal")

_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def set_diagnostics_level(level: int) -> None:
    """Map the [run] diagnostics_level (0=off, 1=minimal, 2=verbose) onto the logger."""
    logger.setLevel(_LEVELS.get(level, logging.DEBUG))
