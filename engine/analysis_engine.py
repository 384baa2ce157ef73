"""
Analysis Engine Module
Grades a finished attempt and describes band scores on the result view
Only objective questions are graded; writing tasks wait for a reviewer
"""

from typing import List, Dict, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from config.settings import BAND_CONFIG, BandConfig
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


@dataclass
class QuestionResult:
    """Result for a single question"""
    question_id: str
    section_id: str
    answer: Optional[AnswerValue]
    correct_answer: Optional[object]
    is_correct: Optional[bool]  # None when not gradable

    @property
    def is_attempted(self) -> bool:
        return self.answer is not None

    @property
    def status(self) -> str:
        if not self.is_attempted:
            return "unattempted"
        if self.is_correct is None:
            return "pending"
        return "correct" if self.is_correct else "incorrect"


@dataclass
class SectionResult:
    section_id: str
    name: str
    total_questions: int
    answered: int
    gradable_questions: int
    correct_answers: int
    time_spent_seconds: int

    @property
    def time_spent_minutes(self) -> float:
        return round(self.time_spent_seconds / 60, 1)

    def to_dict(self) -> Dict:
        return {
            "correctAnswers": self.correct_answers,
            "totalQuestions": self.total_questions,
            "gradableQuestions": self.gradable_questions,
            "answered": self.answered,
            "timeSpent": self.time_spent_minutes,
        }


@dataclass
class AttemptAnalysis:
    """Complete analysis of one attempt"""
    test_id: str
    question_results: List[QuestionResult]
    section_results: Dict[str, SectionResult] = field(default_factory=dict)

    @property
    def correct(self) -> int:
        return sum(s.correct_answers for s in self.section_results.values())

    @property
    def gradable(self) -> int:
        return sum(s.gradable_questions for s in self.section_results.values())

    def to_dict(self) -> Dict:
        return {sid: s.to_dict() for sid, s in self.section_results.items()}


def _normalize(text: str) -> str:
    return " ".join(text.replace("_", " ").split()).lower()


def grade(question: Question, answer: Optional[AnswerValue]) -> Optional[bool]:
    """True/False for gradable questions, None for writing tasks or no key"""
    correct = question.correct_answer
    if correct is None or question.type is QuestionType.LONG_TEXT:
        return None
    if answer is None:
        return False

    if question.type is QuestionType.SINGLE_CHOICE:
        if not isinstance(answer, ChoiceIndex):
            return False
        if isinstance(correct, int):
            return answer.index == correct
        if 0 <= answer.index < len(question.options):
            return _normalize(question.options[answer.index]) == _normalize(str(correct))
        return False

    if question.type is QuestionType.TRI_STATE:
        if not isinstance(answer, TriState):
            return False
        if isinstance(correct, int):
            choices = list(TriStateValue)
            return 0 <= correct < len(choices) and answer.value is choices[correct]
        return _normalize(answer.value.value) == _normalize(str(correct))

    if not isinstance(answer, Text):
        return False
    return _normalize(answer.text) == _normalize(str(correct))


class AnalysisEngine:
    """
    Grades attempts against the question bank of one test
    """

    def __init__(self, questions: Sequence[Question]):
        self.questions = list(questions)
        self.answer_lookup = {q.id: q for q in self.questions}

    def analyze(self, state: SessionState, test: TestDefinition) -> AttemptAnalysis:
        question_results = []
        section_results = {}

        for section in test.sections:
            in_section = section_questions(self.questions, section.id)
            results = [
                QuestionResult(
                    question_id=q.id,
                    section_id=section.id,
                    answer=state.answers.get(q.id),
                    correct_answer=q.correct_answer,
                    is_correct=grade(q, state.answers.get(q.id)),
                )
                for q in in_section
            ]
            question_results.extend(results)

            remaining = state.remaining_seconds.get(section.id, section.duration_seconds)
            section_results[section.id] = SectionResult(
                section_id=section.id,
                name=section.name,
                total_questions=len(results),
                answered=sum(1 for r in results if r.is_attempted),
                gradable_questions=sum(1 for r in results if r.is_correct is not None),
                correct_answers=sum(1 for r in results if r.is_correct),
                time_spent_seconds=max(0, section.duration_seconds - remaining),
            )

        return AttemptAnalysis(
            test_id=test.id,
            question_results=question_results,
            section_results=section_results,
        )


# ===========================
# Band descriptors
# ===========================

def band_color(score: float, config: BandConfig = None) -> str:
    config = config or BAND_CONFIG
    if score >= config.excellent:
        return "green"
    if score >= config.good:
        return "blue"
    if score >= config.satisfactory:
        return "orange"
    return "red"


def band_label(score: float, config: BandConfig = None) -> str:
    config = config or BAND_CONFIG
    if score >= config.excellent:
        return "Excellent"
    if score >= config.good:
        return "Good"
    if score >= config.satisfactory:
        return "Satisfactory"
    return "Needs Improvement"


def strengths(scores: Dict[str, float], config: BandConfig = None) -> List[Tuple[str, float]]:
    """Section bands at or above the strength threshold, best first"""
    config = config or BAND_CONFIG
    strong = [
        (section, score) for section, score in scores.items()
        if section != "overall" and score is not None and score >= config.strength
    ]
    return sorted(strong, key=lambda x: -x[1])


def improvements(scores: Dict[str, float], config: BandConfig = None) -> List[Tuple[str, float]]:
    """Section bands below the improvement threshold, weakest first"""
    config = config or BAND_CONFIG
    weak = [
        (section, score) for section, score in scores.items()
        if section != "overall" and score is not None and score < config.improvement
    ]
    return sorted(weak, key=lambda x: x[1])


STRENGTH_NOTES = {
    "listening": "Strong listening comprehension",
    "reading": "Excellent reading skills",
    "writing": "Good writing ability",
}

IMPROVEMENT_TIPS = {
    "listening": "Focus on listening practice",
    "reading": "Improve reading speed and comprehension",
    "writing": "Practice writing structure and vocabulary",
}
