"""
Navigation Module
Cursor movement through sections and questions, and answer recording

Sections are visited forward only. Within a section the learner can step
back to earlier questions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from core.exceptions import InvalidAnswerError
from core.models import (
    AnswerValue,
    ChoiceIndex,
    Question,
    QuestionType,
    SessionState,
    TestDefinition,
    Text,
    TriState,
    TriStateValue,
    section_questions,
)


class Move(Enum):
    NEXT_QUESTION = "next_question"
    NEXT_SECTION = "next_section"
    PREVIOUS_QUESTION = "previous_question"
    COMPLETE = "complete"
    NONE = "none"


@dataclass
class NavigationResult:
    state: SessionState
    move: Move

    @property
    def completed(self) -> bool:
        return self.move is Move.COMPLETE


def _question_count(test: TestDefinition, questions: Sequence[Question], index: int) -> int:
    return len(section_questions(questions, test.sections[index].id))


def next_open_section(
    state: SessionState,
    test: TestDefinition,
    questions: Sequence[Question],
    start: int,
) -> Optional[int]:
    """First section at or after start that has questions and time left"""
    for i in range(start, len(test.sections)):
        section = test.sections[i]
        if _question_count(test, questions, i) and state.remaining_seconds[section.id] > 0:
            return i
    return None


def advance(
    state: SessionState,
    test: TestDefinition,
    questions: Sequence[Question],
) -> NavigationResult:
    count = _question_count(test, questions, state.current_section_index)

    if state.current_question_index < count - 1:
        new_state = state.copy()
        new_state.current_question_index += 1
        return NavigationResult(new_state, Move.NEXT_QUESTION)

    nxt = next_open_section(state, test, questions, state.current_section_index + 1)
    if nxt is None:
        return NavigationResult(state, Move.COMPLETE)

    new_state = state.copy()
    new_state.current_section_index = nxt
    new_state.current_question_index = 0
    return NavigationResult(new_state, Move.NEXT_SECTION)


def retreat(state: SessionState) -> NavigationResult:
    if state.current_question_index > 0:
        new_state = state.copy()
        new_state.current_question_index -= 1
        return NavigationResult(new_state, Move.PREVIOUS_QUESTION)
    return NavigationResult(state, Move.NONE)


def record_answer(state: SessionState, question_id: str, value: AnswerValue) -> SessionState:
    new_state = state.copy()
    new_state.answers[question_id] = value
    return new_state


def current_question(
    state: SessionState,
    test: TestDefinition,
    questions: Sequence[Question],
) -> Question:
    section = test.sections[state.current_section_index]
    return section_questions(questions, section.id)[state.current_question_index]


def is_final_question(
    state: SessionState,
    test: TestDefinition,
    questions: Sequence[Question],
) -> bool:
    count = _question_count(test, questions, state.current_section_index)
    if state.current_question_index < count - 1:
        return False
    return next_open_section(state, test, questions, state.current_section_index + 1) is None


def next_label(state: SessionState, test: TestDefinition, questions: Sequence[Question]) -> str:
    return "Finish Test" if is_final_question(state, test, questions) else "Next"


# ===========================
# Widget values -> answers
# ===========================

def to_answer(question: Question, raw) -> AnswerValue:
    """Build the answer value for a question from a raw widget value"""
    if question.type is QuestionType.SINGLE_CHOICE:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise InvalidAnswerError(f"Question {question.id} expects an option index, got {raw!r}")
        if question.options and not 0 <= raw < len(question.options):
            raise InvalidAnswerError(f"Question {question.id} has no option {raw}")
        return ChoiceIndex(raw)

    if question.type is QuestionType.TRI_STATE:
        if isinstance(raw, TriStateValue):
            return TriState(raw)
        choices = list(TriStateValue)
        if isinstance(raw, int) and not isinstance(raw, bool) and 0 <= raw < len(choices):
            return TriState(choices[raw])
        try:
            return TriState(TriStateValue(raw))
        except ValueError:
            raise InvalidAnswerError(f"Question {question.id} expects True/False/Not Given, got {raw!r}")

    if not isinstance(raw, str):
        raise InvalidAnswerError(f"Question {question.id} expects text, got {raw!r}")
    return Text(raw)


def word_count_status(question: Question, answer: Optional[AnswerValue]) -> Optional[Tuple[int, bool]]:
    """(word count, meets minimum) for long-text questions; advisory only"""
    if question.type is not QuestionType.LONG_TEXT:
        return None
    words = answer.word_count if isinstance(answer, Text) else 0
    return words, words >= (question.min_words or 0)
