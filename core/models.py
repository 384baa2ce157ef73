"""
Domain models for test-taking sessions

TestDefinition / Section / Question are read-only once loaded for an attempt.
SessionState is the single mutable record of an attempt in progress.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple, Union


class QuestionType(Enum):
    SINGLE_CHOICE = "multiple_choice"
    TRI_STATE = "true_false_not_given"
    SHORT_TEXT = "fill_in_blank"
    LONG_TEXT = "writing"

    @classmethod
    def from_tag(cls, tag: str) -> "QuestionType":
        """Map a data-file type tag to a question type.

        Writing tasks are stored as ``task1`` / ``task2``.
        """
        if tag in ("task1", "task2"):
            return cls.LONG_TEXT
        return cls(tag)


class TriStateValue(Enum):
    TRUE = "True"
    FALSE = "False"
    NOT_GIVEN = "Not Given"


# ===========================
# Answer values
# ===========================

@dataclass(frozen=True)
class ChoiceIndex:
    """Zero-based index into a single-choice question's options"""
    index: int

    kind: ClassVar[str] = "choice"

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "value": self.index}


@dataclass(frozen=True)
class TriState:
    value: TriStateValue

    kind: ClassVar[str] = "tri_state"

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "value": self.value.value}


@dataclass(frozen=True)
class Text:
    text: str

    kind: ClassVar[str] = "text"

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "value": self.text}

    @property
    def word_count(self) -> int:
        return len([w for w in self.text.split() if w])


AnswerValue = Union[ChoiceIndex, TriState, Text]

ANSWER_KINDS = {
    QuestionType.SINGLE_CHOICE: ChoiceIndex,
    QuestionType.TRI_STATE: TriState,
    QuestionType.SHORT_TEXT: Text,
    QuestionType.LONG_TEXT: Text,
}


def answer_from_dict(data: Dict) -> AnswerValue:
    kind = data["kind"]
    value = data["value"]
    if kind == ChoiceIndex.kind:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Choice answer must be an integer, got {value!r}")
        return ChoiceIndex(value)
    if kind == TriState.kind:
        return TriState(TriStateValue(value))
    if kind == Text.kind:
        if not isinstance(value, str):
            raise ValueError(f"Text answer must be a string, got {value!r}")
        return Text(value)
    raise ValueError(f"Unknown answer kind: {kind!r}")


# ===========================
# Test definition
# ===========================

@dataclass(frozen=True)
class Section:
    """Timed subdivision of a test"""
    id: str
    name: str
    duration_seconds: int
    expected_questions: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> "Section":
        # Data files carry durations in minutes
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            duration_seconds=int(round(float(data["duration"]) * 60)),
            expected_questions=int(data.get("questions", 0)),
        )


@dataclass(frozen=True)
class TestDefinition:
    __test__ = False

    id: str
    title: str
    sections: Tuple[Section, ...]
    description: str = ""
    test_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "TestDefinition":
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            description=data.get("description", ""),
            test_type=data.get("type"),
            sections=tuple(Section.from_dict(s) for s in data.get("sections", [])),
        )

    @property
    def section_ids(self) -> List[str]:
        return [s.id for s in self.sections]


@dataclass(frozen=True)
class Question:
    id: str
    test_id: str
    section_id: str
    type: QuestionType
    prompt: str
    tag: str = ""
    options: Tuple[str, ...] = ()
    correct_answer: Optional[Union[int, str]] = None
    passage: Optional[str] = None
    min_words: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "Question":
        tag = data["type"]
        return cls(
            id=data["id"],
            test_id=data["testId"],
            section_id=data["section"],
            type=QuestionType.from_tag(tag),
            tag=tag,
            prompt=data.get("question", ""),
            options=tuple(data.get("options") or ()),
            correct_answer=data.get("correctAnswer"),
            passage=data.get("passage"),
            min_words=data.get("minWords"),
        )


def section_questions(questions: Sequence[Question], section_id: str) -> List[Question]:
    """Questions of one section, in data-file order"""
    return [q for q in questions if q.section_id == section_id]


# ===========================
# Session state
# ===========================

@dataclass
class SessionState:
    """Progress of one attempt; persisted after every mutation"""
    test_id: str
    remaining_seconds: Dict[str, int]
    current_section_index: int = 0
    current_question_index: int = 0
    answers: Dict[str, AnswerValue] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def fresh(cls, test: TestDefinition, started_at: Optional[datetime] = None) -> "SessionState":
        return cls(
            test_id=test.id,
            remaining_seconds={s.id: s.duration_seconds for s in test.sections},
            started_at=started_at or datetime.now(),
        )

    @property
    def cursor(self) -> Tuple[int, int]:
        return self.current_section_index, self.current_question_index

    def copy(self) -> "SessionState":
        return replace(
            self,
            answers=dict(self.answers),
            remaining_seconds=dict(self.remaining_seconds),
        )

    def fits(self, test: TestDefinition, questions: Sequence[Question]) -> bool:
        """Whether cursor, timers and answers are consistent with the test definition"""
        if self.test_id != test.id:
            return False
        if set(self.remaining_seconds) != set(test.section_ids):
            return False
        if any(v < 0 for v in self.remaining_seconds.values()):
            return False
        if not 0 <= self.current_section_index < len(test.sections):
            return False
        section = test.sections[self.current_section_index]
        count = len(section_questions(questions, section.id))
        if not 0 <= self.current_question_index < count:
            return False
        return self.answers_fit(questions)

    def answers_fit(self, questions: Sequence[Question]) -> bool:
        """Whether every recorded answer belongs to a question and suits its type"""
        by_id = {q.id: q for q in questions}
        for question_id, answer in self.answers.items():
            question = by_id.get(question_id)
            if question is None or not isinstance(answer, ANSWER_KINDS[question.type]):
                return False
            if isinstance(answer, ChoiceIndex) and question.options:
                if not 0 <= answer.index < len(question.options):
                    return False
        return True

    def to_dict(self) -> Dict:
        return {
            "testId": self.test_id,
            "currentSection": self.current_section_index,
            "currentQuestion": self.current_question_index,
            "answers": {qid: a.to_dict() for qid, a in self.answers.items()},
            "timeRemaining": dict(self.remaining_seconds),
            "startedAt": self.started_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "SessionState":
        remaining = {}
        for section_id, seconds in data["timeRemaining"].items():
            if isinstance(seconds, bool) or not isinstance(seconds, int):
                raise ValueError(f"Bad remaining time for {section_id}: {seconds!r}")
            remaining[section_id] = seconds

        return cls(
            test_id=data["testId"],
            current_section_index=int(data["currentSection"]),
            current_question_index=int(data["currentQuestion"]),
            answers={qid: answer_from_dict(a) for qid, a in data.get("answers", {}).items()},
            remaining_seconds=remaining,
            started_at=datetime.fromisoformat(data["startedAt"]),
        )


# ===========================
# Finalized attempt
# ===========================

@dataclass
class AttemptSubmission:
    """What a result sink receives when an attempt is finalized"""
    user_id: str
    test_id: str
    answers: Dict[str, AnswerValue]
    started_at: datetime
    completed_at: datetime
    auto_submitted: bool
    section_results: Dict[str, Dict] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "userId": self.user_id,
            "testId": self.test_id,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat(),
            "autoSubmitted": self.auto_submitted,
            "answers": {qid: a.to_dict() for qid, a in self.answers.items()},
            "sectionResults": self.section_results,
        }
