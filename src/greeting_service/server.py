"""
Process-level serving: binds the configured port once and runs uvicorn.

A port that is already taken is fatal: the process exits with status 1 and
nothing retries. A termination signal shuts the server down gracefully, after
which uvicorn re-raises the signal so the process dies by it.
"""
import copy
import logging
import sys

import uvicorn
from uvicorn.config import LOGGING_CONFIG
from uvicorn.main import STARTUP_FAILURE

from greeting_service.app import create_app
from greeting_service.config import ServiceSettings

logger = logging.getLogger(__name__)

BIND_FAILURE = 1


def build_log_config(settings: ServiceSettings) -> dict:
    """uvicorn's logging dictConfig plus a logger for this package."""
    log_config = copy.deepcopy(LOGGING_CONFIG)
    log_config["loggers"]["greeting_service"] = {
        "handlers": ["default"],
        "level": settings.log_level.upper(),
        "propagate": False,
    }
    return log_config


def build_server(settings: ServiceSettings) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=build_log_config(settings),
        access_log=settings.access_log,
    )
    return uvicorn.Server(config)


def serve(settings: ServiceSettings) -> None:
    """Bind once, then accept until the process is told to stop.

    Exits with BIND_FAILURE if the port cannot be bound and with uvicorn's
    STARTUP_FAILURE if the server never starts.
    """
    server = build_server(settings)
    try:
        # uvicorn logs the OSError and exits; its status varies by release.
        sock = server.config.bind_socket()
    except SystemExit:
        sys.exit(BIND_FAILURE)
    logger.debug("Bound %s:%d", settings.host, settings.port)
    server.run(sockets=[sock])
    if not server.started:
        sys.exit(STARTUP_FAILURE)
