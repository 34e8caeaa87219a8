"""Application entry point for the QuizSync service."""

from __future__ import annotations

import socket

from quiz_sync.constants.about import APP_NAME
from quiz_sync.core.quiz_manager import QuizManager
from quiz_sync.core.services.document_store import InMemoryDocumentStore
from quiz_sync.core.settings import SyncSettings
from quiz_sync.server.api_server import run_api_server
from quiz_sync.utils.logging_config import configure_logging


def _determine_student_url(port: int) -> str:
    """Best-effort determination of the local IP for the student-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging, build the quiz manager, and serve the API."""
    logger = configure_logging()
    logger.info("Starting %s...", APP_NAME)

    settings = SyncSettings()
    quiz_manager = QuizManager(store=InMemoryDocumentStore(), settings=settings)
    logger.info("Student API available at %s", _determine_student_url(settings.port))
    run_api_server(quiz_manager)


if __name__ == "__main__":
    main()
