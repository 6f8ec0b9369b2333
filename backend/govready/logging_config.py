import logging
import sys

from govready.config import settings


def setup_logging() -> logging.Logger:
    """Configure logging to stdout with timestamps, levels and module names.

    Every module logs through ``logging.getLogger(__name__)`` so the
    ``govready.*`` hierarchy picks up this configuration.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("govready")
