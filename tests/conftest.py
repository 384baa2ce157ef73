import json
import os
import tempfile

# Keep runtime data out of the working tree; must happen before config.settings is imported
os.environ.setdefault("IELTS_DATA_DIR", tempfile.mkdtemp(prefix="ielts-test-data-"))

import pytest

from core.exceptions import SubmissionError, TestNotFoundError
from core.models import Question, QuestionType, Section, TestDefinition
from engine.exam_engine import TestSessionEngine
from engine.timer import ManualClock
from storage.session_store import InMemorySessionStore


class FakeProvider:
    def __init__(self, test, questions):
        self.test = test
        self.questions = questions
        self.calls = 0

    def load_test(self, test_id):
        self.calls += 1
        if self.test is None or test_id != self.test.id:
            raise TestNotFoundError(test_id)
        return self.test, list(self.questions)


class RecordingSink:
    """Accepts submissions; fails the first `failures` calls"""

    def __init__(self, failures=0):
        self.failures = failures
        self.submissions = []

    def submit(self, submission):
        if self.failures:
            self.failures -= 1
            raise SubmissionError("backend unavailable")
        self.submissions.append(submission)
        return f"result-{len(self.submissions)}"


def make_question(qid, section, qtype=QuestionType.SINGLE_CHOICE, **kwargs):
    if qtype is QuestionType.SINGLE_CHOICE:
        kwargs.setdefault("options", ("a", "b", "c", "d"))
    return Question(
        id=qid,
        test_id="mock-1",
        section_id=section,
        type=qtype,
        prompt=f"Prompt {qid}",
        **kwargs,
    )


@pytest.fixture
def two_section_test():
    return TestDefinition(
        id="mock-1",
        title="Mock 1",
        sections=(
            Section("A", "Listening", 60, 2),
            Section("B", "Reading", 30, 2),
        ),
    )


@pytest.fixture
def questions():
    return [
        make_question("q1", "A", correct_answer=2),
        make_question("q2", "A", QuestionType.TRI_STATE, correct_answer="Not Given"),
        make_question("q3", "B", QuestionType.SHORT_TEXT, correct_answer="distance"),
        make_question("q4", "B", QuestionType.LONG_TEXT, min_words=5),
    ]


@pytest.fixture
def provider(two_section_test, questions):
    return FakeProvider(two_section_test, questions)


@pytest.fixture
def store():
    return InMemorySessionStore("student-1")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def make_engine(provider, store, sink, clock):
    def _make(**overrides):
        kwargs = dict(provider=provider, store=store, sink=sink, clock=clock)
        kwargs.update(overrides)
        return TestSessionEngine("mock-1", **kwargs)
    return _make


@pytest.fixture
def data_files(tmp_path):
    """tests.json / questions.json in the web app's layout"""
    tests = [{
        "id": "ielts-1",
        "title": "IELTS 1",
        "sections": [
            {"id": "reading", "name": "Reading", "duration": 60, "questions": 2},
            {"id": "writing", "name": "Writing", "duration": 1.5, "questions": 1},
        ],
    }]
    questions = [
        {"id": "r1", "testId": "ielts-1", "section": "reading", "type": "multiple_choice",
         "question": "Pick one", "options": ["x", "y"], "correctAnswer": 1},
        {"id": "r2", "testId": "ielts-1", "section": "reading", "type": "true_false_not_given",
         "question": "True?", "passage": "Some text", "correctAnswer": "True"},
        {"id": "w1", "testId": "ielts-1", "section": "writing", "type": "task2",
         "question": "Discuss", "minWords": 250},
        {"id": "other", "testId": "ielts-2", "section": "reading", "type": "fill_in_blank",
         "question": "Elsewhere"},
    ]
    tests_file = tmp_path / "tests.json"
    questions_file = tmp_path / "questions.json"
    tests_file.write_text(json.dumps(tests), encoding="utf-8")
    questions_file.write_text(json.dumps(questions), encoding="utf-8")
    return tests_file, questions_file
