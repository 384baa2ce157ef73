"""Errors raised by the test-taking engine"""


class ExamEngineError(Exception):
    pass


class TestNotFoundError(ExamEngineError):
    """Test definition or its questions could not be loaded"""

    __test__ = False

    def __init__(self, test_id: str, reason: str = "not found"):
        self.test_id = test_id
        self.reason = reason
        super().__init__(f"Test {test_id!r}: {reason}")


class InvalidAnswerError(ExamEngineError):
    pass


class SubmissionError(ExamEngineError):
    """Raised by a result sink that could not persist an attempt"""


class SubmissionFailedError(ExamEngineError):
    """Submission did not complete; the local session is kept"""

    retryable = True

    def __init__(self, test_id: str, cause: Exception):
        self.test_id = test_id
        self.cause = cause
        super().__init__(f"Submission of {test_id!r} failed: {cause}")
