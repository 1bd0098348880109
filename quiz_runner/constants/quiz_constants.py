"""Quiz-attempt constants shared across the session, storage and API layers."""

import os
from pathlib import Path

CLOCK_TICK_INTERVAL_MS: int = 1000
AUTOSAVE_DELAY_MS: int = 500

# Delays between background resubmissions after a timeout-triggered submit fails.
TIMEOUT_RETRY_DELAYS_MS: tuple[int, ...] = (2_000, 5_000, 10_000, 30_000)

SNAPSHOT_KEY_TEMPLATE: str = "quiz_progress_{quiz_id}_{learner_id}"
SNAPSHOT_VERSION: int = 2
SETTINGS_PATH: str | None = os.getenv("QUIZ_RUNNER_SETTINGS_PATH")

QUIZ_DIR: str = os.getenv(
    "QUIZ_RUNNER_QUIZ_DIR",
    str(Path(__file__).resolve().parents[1] / "data" / "quizzes"),
)

REASON_QUIZ_UNAVAILABLE: str = "quiz unavailable"
REASON_NO_QUESTIONS: str = "no questions"
REASON_NO_ATTEMPTS_REMAINING: str = "no attempts remaining"

DEFAULT_TRUE_FALSE_OPTIONS: tuple[str, str] = ("True", "False")
