"""Network configuration constants for the quiz runner."""

import os

DEFAULT_HOST: str = os.getenv("QUIZ_RUNNER_HOST", "0.0.0.0")
DEFAULT_PORT: int = int(os.getenv("QUIZ_RUNNER_PORT", "8000"))
DEFAULT_API_BASE_URL: str = os.getenv("QUIZ_RUNNER_API_URL", f"http://127.0.0.1:{DEFAULT_PORT}")

# Upper bound for a single start/submit round trip before it is reported as a timeout.
REQUEST_TIMEOUT_MS: int = 15_000

LEARNER_ID_HEADER: str = "x-learner-id"
