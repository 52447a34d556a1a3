"""Logfire observability initialization and instrumentation."""

import logging

import logfire

from arena import __version__
from arena.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire and instrument outbound HTTP.

    Call once at process startup. Without a token, spans stay local and
    nothing is exported.

    Instruments:
    - HTTPX clients (OpenRouter, Polymarket Gamma)
    - Python logging (bridged to Logfire)
    """
    if not settings.logfire_token:
        logfire.configure(send_to_logfire=False, console=False)
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="arena",
            service_version=__version__,
        )
        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire tracking initialized")

    except Exception as e:
        # Continue running - observability is optional
        logger.warning(f"Failed to initialize Logfire: {e}")
