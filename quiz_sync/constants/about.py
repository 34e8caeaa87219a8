"""Static metadata describing QuizSync."""

APP_NAME = "QuizSync"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizSync runs timed classroom quizzes: the teacher starts a quiz and every "
    "student browser derives the active question and countdown from one shared start time."
)
