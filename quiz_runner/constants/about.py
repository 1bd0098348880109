"""Static metadata describing QuizRunner."""

APP_NAME = "QuizRunner"
APP_VERSION = "0.1"
APP_ABOUT_TEXT = (
    "QuizRunner runs timed, resumable quiz attempts for the learning platform. "
    "It pairs a Qt learner session with a FastAPI attempt service that scores submissions."
)
