"""Application entry point for the QuizRunner attempt service."""

from __future__ import annotations

from logging import Logger
from pathlib import Path

from quiz_runner.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_runner.constants.quiz_constants import QUIZ_DIR
from quiz_runner.core.attempt_manager import AttemptManager
from quiz_runner.core.errors import QuizImportError
from quiz_runner.core.quiz_importer import load_quiz_from_file
from quiz_runner.server.api_server import serve_api
from quiz_runner.utils.logging_config import configure_logging


def load_quiz_directory(manager: AttemptManager, directory: Path, logger: Logger) -> int:
    """Load every ``*.txt`` quiz in ``directory``; files that fail to parse are reported and skipped."""
    loaded = 0
    for path in sorted(directory.glob("*.txt")):
        try:
            manager.load_quiz(load_quiz_from_file(path))
        except QuizImportError as exc:
            logger.error("Skipping %s: %s", path.name, exc)
            continue
        loaded += 1
    return loaded


def main() -> None:
    """Initialize logging, load quiz definitions, and serve the attempt API."""
    logger = configure_logging()
    logger.info("Starting QuizRunner attempt service…")

    manager = AttemptManager()
    quiz_dir = Path(QUIZ_DIR)
    if quiz_dir.is_dir():
        count = load_quiz_directory(manager, quiz_dir, logger)
        logger.info("Loaded %d quiz(zes) from %s", count, quiz_dir)
    else:
        logger.warning("Quiz directory %s does not exist; serving no quizzes", quiz_dir)

    serve_api(manager, host=DEFAULT_HOST, port=DEFAULT_PORT)


if __name__ == "__main__":
    main()
