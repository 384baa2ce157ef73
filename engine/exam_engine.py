"""
Exam Engine Module
Runs one test attempt: resumable session, section timers, navigation,
review and submission
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
import logging

from config.settings import TIMER_CONFIG, TimerConfig
from core.exceptions import SubmissionError, SubmissionFailedError, TestNotFoundError
from core.models import (
    AnswerValue,
    AttemptSubmission,
    Question,
    Section,
    SessionState,
    TestDefinition,
    section_questions,
)
from engine.analysis_engine import AnalysisEngine, AttemptAnalysis
from engine.navigation import (
    Move,
    advance,
    current_question,
    is_final_question,
    next_label,
    record_answer,
    retreat,
    to_answer,
)
from engine.review import ReviewSummary, build_review_summary
from engine.timer import TickScheduler, TimerController, TimerState
from storage.session_store import SessionStore

logger = logging.getLogger(__name__)


class AttemptStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


@dataclass
class SubmissionReceipt:
    result_id: str
    test_id: str
    auto_submitted: bool
    analysis: AttemptAnalysis
    notice: Optional[str] = None


class TestSessionEngine:
    """
    One learner's attempt at one test.

    provider  -- has load_test(test_id) -> (TestDefinition, [Question])
    store     -- SessionStore scoped to the learner
    sink      -- has submit(AttemptSubmission) -> result id
    """

    __test__ = False

    def __init__(
        self,
        test_id: str,
        provider,
        store: SessionStore,
        sink,
        clock=None,
        config: TimerConfig = None,
    ):
        self.test_id = test_id
        self.provider = provider
        self.store = store
        self.sink = sink
        self.config = config or TIMER_CONFIG

        self.test: Optional[TestDefinition] = None
        self.questions: List[Question] = []
        self.state: Optional[SessionState] = None
        self.status = AttemptStatus.NOT_STARTED
        self.receipt: Optional[SubmissionReceipt] = None
        self.resumed = False
        self.last_error: Optional[SubmissionFailedError] = None

        self.timer: Optional[TimerController] = None
        self.scheduler = TickScheduler(self._on_tick, clock=clock, interval=self.config.tick_seconds)
        self._status_before_confirm = AttemptStatus.REVIEW

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> SessionState:
        """Load the test and resume or create the session"""
        if self.status is not AttemptStatus.NOT_STARTED:
            self.resume()
            return self.state

        test, questions = self.provider.load_test(self.test_id)
        first = next(
            (i for i, s in enumerate(test.sections) if section_questions(questions, s.id)),
            None,
        )
        if first is None:
            raise TestNotFoundError(self.test_id, "no questions")

        saved = self.store.load(self.test_id)
        if saved is not None and not saved.fits(test, questions):
            logger.warning(f"Saved session for {self.test_id} does not match the test; starting fresh")
            self.store.clear(self.test_id)
            saved = None

        if saved is not None:
            state = saved
            self.resumed = True
            logger.info(f"Resumed session for test {self.test_id} at {state.cursor}")
        else:
            state = SessionState.fresh(test)
            state.current_section_index = first
            self.store.save(state)
            logger.info(f"Created session for test {self.test_id}")

        self.test = test
        self.questions = questions
        self.state = state
        self.timer = TimerController(
            test,
            read_state=lambda: self.state,
            write_state=self._write,
            on_expire=self._on_expire,
        )
        self.timer.start()
        self.scheduler.start()
        self.status = AttemptStatus.IN_PROGRESS
        return state

    def suspend(self) -> None:
        """Stop counting while the test page is not shown"""
        self.scheduler.stop()

    def resume(self) -> None:
        if self.status is AttemptStatus.IN_PROGRESS and self.timer.status is TimerState.RUNNING:
            self.scheduler.start()

    def pump(self) -> int:
        """Deliver ticks for elapsed time; returns how many were applied"""
        return self.scheduler.pump()

    def _write(self, state: SessionState) -> None:
        self.state = state
        self.store.save(state)

    def _on_tick(self) -> None:
        self.timer.tick()

    def _on_expire(self) -> None:
        self.scheduler.stop()
        try:
            self.auto_submit()
        except SubmissionFailedError:
            # kept in last_error; the page offers a retry
            logger.warning(f"Auto-submit of test {self.test_id} is waiting for a retry")

    # ------------------------------------------------------------------
    # Position and time
    # ------------------------------------------------------------------

    @property
    def current_section(self) -> Section:
        return self.test.sections[self.state.current_section_index]

    @property
    def current_question(self) -> Question:
        return current_question(self.state, self.test, self.questions)

    @property
    def section_questions(self) -> List[Question]:
        return section_questions(self.questions, self.current_section.id)

    @property
    def remaining_seconds(self) -> int:
        return self.state.remaining_seconds[self.current_section.id]

    @property
    def expired(self) -> bool:
        return self.timer is not None and self.timer.status is TimerState.EXPIRED

    @property
    def locked(self) -> bool:
        """No more answers or moves once time is up or submission began"""
        return self.expired or self.status in (AttemptStatus.SUBMITTING, AttemptStatus.SUBMITTED)

    @property
    def is_final_question(self) -> bool:
        return is_final_question(self.state, self.test, self.questions)

    @property
    def next_label(self) -> str:
        return next_label(self.state, self.test, self.questions)

    def answer_for(self, question_id: str) -> Optional[AnswerValue]:
        return self.state.answers.get(question_id)

    # ------------------------------------------------------------------
    # Question flow
    # ------------------------------------------------------------------

    def answer(self, value: AnswerValue) -> None:
        if self.locked or self.status is not AttemptStatus.IN_PROGRESS:
            return
        self._write(record_answer(self.state, self.current_question.id, value))

    def answer_raw(self, raw) -> None:
        """Record a raw widget value; raises InvalidAnswerError"""
        self.answer(to_answer(self.current_question, raw))

    def next(self) -> Move:
        if self.locked or self.status is not AttemptStatus.IN_PROGRESS:
            return Move.NONE

        result = advance(self.state, self.test, self.questions)
        if result.completed:
            self.open_review()
            return result.move

        self._write(result.state)
        if result.move is Move.NEXT_SECTION:
            self.scheduler.restart()
            logger.info(
                f"Test {self.test_id}: entered section {self.current_section.id} "
                f"with {self.remaining_seconds}s left"
            )
        return result.move

    def previous(self) -> Move:
        if self.locked or self.status is not AttemptStatus.IN_PROGRESS:
            return Move.NONE

        result = retreat(self.state)
        if result.move is not Move.NONE:
            self._write(result.state)
        return result.move

    # ------------------------------------------------------------------
    # Review and submission
    # ------------------------------------------------------------------

    def open_review(self) -> None:
        if self.status is not AttemptStatus.IN_PROGRESS or self.expired:
            return
        self.timer.pause()
        self.scheduler.stop()
        self.status = AttemptStatus.REVIEW

    def close_review(self) -> None:
        if self.status is not AttemptStatus.REVIEW or self.expired:
            return
        self.timer.resume()
        self.scheduler.start()
        self.status = AttemptStatus.IN_PROGRESS

    def review_summary(self) -> ReviewSummary:
        return build_review_summary(self.state, self.test, self.questions)

    def request_submit(self) -> None:
        """Ask for confirmation; nothing is cleared until confirm_submit"""
        if self.expired:
            return
        if self.status is AttemptStatus.IN_PROGRESS:
            self.open_review()
        if self.status is AttemptStatus.REVIEW:
            self._status_before_confirm = self.status
            self.status = AttemptStatus.CONFIRMING

    def cancel_submit(self) -> None:
        if self.status is AttemptStatus.CONFIRMING:
            self.status = self._status_before_confirm

    def confirm_submit(self) -> Optional[SubmissionReceipt]:
        if self.status is AttemptStatus.SUBMITTED:
            return self.receipt
        if self.status is not AttemptStatus.CONFIRMING:
            return None
        return self._finalize(auto=False)

    def auto_submit(self) -> Optional[SubmissionReceipt]:
        """Submit without confirmation once time is up; otherwise a no-op"""
        if not self.expired:
            return self.receipt
        return self._finalize(auto=True)

    def retry_submit(self) -> Optional[SubmissionReceipt]:
        """Retry after a failed submission"""
        if self.expired:
            return self.auto_submit()
        if self.status is AttemptStatus.REVIEW:
            self.request_submit()
        return self.confirm_submit()

    def _finalize(self, auto: bool) -> Optional[SubmissionReceipt]:
        if self.status in (AttemptStatus.SUBMITTING, AttemptStatus.SUBMITTED):
            return self.receipt
        if self.status is AttemptStatus.NOT_STARTED:
            return None

        prior = self.status
        self.status = AttemptStatus.SUBMITTING
        self.scheduler.stop()

        analysis = AnalysisEngine(self.questions).analyze(self.state, self.test)
        submission = AttemptSubmission(
            user_id=self.store.user_id,
            test_id=self.test_id,
            answers=dict(self.state.answers),
            started_at=self.state.started_at,
            completed_at=datetime.now(),
            auto_submitted=auto,
            section_results=analysis.to_dict(),
        )

        try:
            result_id = self.sink.submit(submission)
        except (SubmissionError, OSError) as e:
            logger.error(f"Submission of test {self.test_id} failed: {e}")
            self.status = prior
            self.last_error = SubmissionFailedError(self.test_id, e)
            raise self.last_error from e

        self.store.clear(self.test_id)
        self.timer.stop()
        self.last_error = None
        self.status = AttemptStatus.SUBMITTED
        self.receipt = SubmissionReceipt(
            result_id=result_id,
            test_id=self.test_id,
            auto_submitted=auto,
            analysis=analysis,
            notice=self.config.auto_submit_notice if auto else None,
        )
        logger.info(
            f"Submitted test {self.test_id} ({'auto' if auto else 'manual'}): "
            f"{analysis.correct}/{analysis.gradable} correct"
        )
        return self.receipt
