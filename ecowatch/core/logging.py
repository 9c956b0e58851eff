"""
Logging setup. Every module uses logging.getLogger(__name__);
this only configures the root handler once at startup.
"""

import logging

from ecowatch.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    global _configured

    if _configured:
        return

    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # The Firestore listener is chatty at INFO
    logging.getLogger("google.cloud.firestore_v1.watch").setLevel(logging.WARNING)
    _configured = True
