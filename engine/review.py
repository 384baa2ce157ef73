"""Per-section completion summary shown on the review screen"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

from core.models import Question, SessionState, TestDefinition, section_questions


@dataclass
class SectionProgress:
    section_id: str
    name: str
    answered: int
    total: int

    @property
    def percent(self) -> float:
        return self.answered / self.total * 100 if self.total else 0.0

    @property
    def unanswered(self) -> int:
        return self.total - self.answered


@dataclass
class ReviewSummary:
    sections: List[SectionProgress]

    @property
    def answered(self) -> int:
        return sum(s.answered for s in self.sections)

    @property
    def total(self) -> int:
        return sum(s.total for s in self.sections)

    @property
    def unanswered(self) -> int:
        return self.total - self.answered

    def to_dict(self) -> Dict:
        return {
            s.section_id: {"name": s.name, "answered": s.answered, "total": s.total}
            for s in self.sections
        }


def build_review_summary(
    state: SessionState,
    test: TestDefinition,
    questions: Sequence[Question],
) -> ReviewSummary:
    sections = []
    for section in test.sections:
        in_section = section_questions(questions, section.id)
        answered = sum(1 for q in in_section if q.id in state.answers)
        sections.append(SectionProgress(section.id, section.name, answered, len(in_section)))
    return ReviewSummary(sections)
