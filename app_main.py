"""Application entry point for the ClassFlow workflow API."""

from __future__ import annotations

import uvicorn

from workflow_app.constants.about import APP_NAME
from workflow_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from workflow_app.core.clock import SystemClock
from workflow_app.core.services.notifier import LoggingNotifier
from workflow_app.core.services.workflow_repository import InMemoryRepository
from workflow_app.core.workflow_coordinator import WorkflowCoordinator
from workflow_app.server.api_server import create_api_app, start_expiry_sweeper
from workflow_app.utils.logging_config import configure_logging


def build_coordinator() -> WorkflowCoordinator:
    """Wire the coordinator with in-memory storage and log-only notifications."""
    return WorkflowCoordinator(
        repository=InMemoryRepository(),
        clock=SystemClock(),
        notifier=LoggingNotifier(),
    )


def main() -> None:
    """Initialize logging, start the expiry sweeper and serve the API."""
    logger = configure_logging()
    logger.info("Starting %s…", APP_NAME)

    coordinator = build_coordinator()
    _sweeper, stop_sweeper = start_expiry_sweeper(coordinator)
    try:
        uvicorn.run(create_api_app(coordinator), host=DEFAULT_HOST, port=DEFAULT_PORT, log_level="info")
    finally:
        stop_sweeper.set()


if __name__ == "__main__":
    main()
