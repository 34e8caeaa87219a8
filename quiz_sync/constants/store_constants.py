"""Collection names used in the document store."""

QUIZZES_COLLECTION: str = "quizzes"
RESULTS_COLLECTION: str = "results"
ATTENDANCE_COLLECTION: str = "attendance"
CLASS_RESULTS_COLLECTION: str = "classResults"
COMPLETE_RESULTS_COLLECTION: str = "completeQuizResults"
SERVER_TIME_COLLECTION: str = "serverTime"
SERVER_TIME_DOCUMENT: str = "current"
