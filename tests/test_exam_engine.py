"""Tests for a full test attempt driven through TestSessionEngine"""

import pytest

from config.settings import TIMER_CONFIG
from core.exceptions import InvalidAnswerError, SubmissionFailedError, TestNotFoundError
from core.models import ChoiceIndex, Section, SessionState, TestDefinition, Text
from engine.exam_engine import AttemptStatus
from engine.navigation import Move
from engine.timer import TimerState
from storage.session_store import JsonSessionStore

from conftest import FakeProvider, RecordingSink


class TestStart:

    def test_creates_and_saves_fresh_session(self, make_engine, store):
        engine = make_engine()
        state = engine.start()

        assert engine.status is AttemptStatus.IN_PROGRESS
        assert not engine.resumed
        assert state.cursor == (0, 0)
        assert state.remaining_seconds == {"A": 60, "B": 30}
        assert store.load("mock-1") == state
        assert engine.current_question.id == "q1"

    def test_resumes_saved_session(self, make_engine, store, clock):
        first = make_engine()
        first.start()
        first.answer_raw(2)
        first.next()
        clock.advance(5)
        first.pump()
        first.suspend()

        second = make_engine()
        state = second.start()

        assert second.resumed
        assert state.cursor == (0, 1)
        assert state.answers == {"q1": ChoiceIndex(2)}
        assert state.remaining_seconds["A"] == 55
        assert state.started_at == first.state.started_at
        assert second.answer_for("q1") == ChoiceIndex(2)

    def test_unknown_test_creates_no_session(self, make_engine, store):
        engine = make_engine(provider=FakeProvider(None, []))
        with pytest.raises(TestNotFoundError):
            engine.start()
        assert store.entries == {}
        assert engine.status is AttemptStatus.NOT_STARTED

    def test_test_without_questions_is_not_found(self, make_engine, store, two_section_test):
        engine = make_engine(provider=FakeProvider(two_section_test, []))
        with pytest.raises(TestNotFoundError):
            engine.start()
        assert store.entries == {}

    def test_corrupt_session_is_replaced(self, make_engine, store):
        store.entries[store.key("mock-1")] = "{not json"
        engine = make_engine()
        state = engine.start()

        assert not engine.resumed
        assert state.remaining_seconds == {"A": 60, "B": 30}
        assert store.load("mock-1") == state

    def test_stale_cursor_is_replaced(self, make_engine, store, two_section_test):
        stale = SessionState.fresh(two_section_test)
        stale.current_question_index = 7
        store.save(stale)

        engine = make_engine()
        state = engine.start()

        assert not engine.resumed
        assert state.cursor == (0, 0)

    @pytest.mark.parametrize("answers", [
        {"q1": ChoiceIndex(9)},
        {"q1": Text("b")},
        {"deleted": ChoiceIndex(0)},
    ])
    def test_unusable_answers_are_replaced(self, make_engine, store, two_section_test, answers):
        saved = SessionState.fresh(two_section_test)
        saved.remaining_seconds["A"] = 12
        saved.answers = answers
        store.save(saved)

        engine = make_engine()
        state = engine.start()

        assert not engine.resumed
        assert state.answers == {}
        assert state.remaining_seconds["A"] == 60

    def test_undecodable_session_file_is_replaced(self, make_engine, tmp_path):
        store = JsonSessionStore("student-1", base_dir=tmp_path)
        store.user_dir.mkdir(parents=True)
        (store.user_dir / "test_session_mock-1.json").write_bytes(b"\x80\x81garbage")

        engine = make_engine(store=store)
        state = engine.start()

        assert not engine.resumed
        assert store.load("mock-1") == state

    def test_starts_on_first_section_with_questions(self, make_engine, questions):
        test = TestDefinition(
            id="mock-1",
            title="Speaking first",
            sections=(
                Section("S", "Speaking", 120),
                Section("A", "Listening", 60),
                Section("B", "Reading", 30),
            ),
        )
        engine = make_engine(provider=FakeProvider(test, questions))
        state = engine.start()
        assert state.cursor == (1, 0)
        assert engine.current_section.id == "A"

    def test_second_start_does_not_reload(self, make_engine, provider):
        engine = make_engine()
        engine.start()
        engine.start()
        assert provider.calls == 1


class TestTiming:

    def test_ticks_are_persisted(self, make_engine, store, clock):
        engine = make_engine()
        engine.start()
        clock.advance(2)
        assert engine.pump() == 2
        assert engine.remaining_seconds == 58
        assert store.load("mock-1").remaining_seconds == {"A": 58, "B": 30}

    def test_section_timers_are_independent(self, make_engine, clock):
        engine = make_engine()
        engine.start()
        clock.advance(10)
        engine.pump()
        engine.next()
        engine.next()

        assert engine.state.cursor == (1, 0)
        assert engine.remaining_seconds == 30
        assert engine.state.remaining_seconds["A"] == 50

        clock.advance(4)
        engine.pump()
        assert engine.state.remaining_seconds == {"A": 50, "B": 26}

    def test_section_expiry_auto_submits_once(self, make_engine, store, sink, clock):
        engine = make_engine()
        engine.start()
        engine.answer(ChoiceIndex(2))
        engine.next()
        engine.next()
        assert engine.remaining_seconds == 30

        clock.advance(30)
        assert engine.pump() == 30

        assert engine.status is AttemptStatus.SUBMITTED
        assert len(sink.submissions) == 1
        assert store.load("mock-1") is None

        submission = sink.submissions[0]
        assert submission.auto_submitted is True
        assert submission.user_id == "student-1"
        assert submission.answers == {"q1": ChoiceIndex(2)}
        assert submission.section_results["A"]["correctAnswers"] == 1
        assert submission.section_results["B"]["timeSpent"] == 0.5

        assert engine.receipt.auto_submitted
        assert engine.receipt.notice == TIMER_CONFIG.auto_submit_notice

        clock.advance(10)
        assert engine.pump() == 0
        assert engine.auto_submit() is engine.receipt
        assert len(sink.submissions) == 1

    def test_review_pauses_countdown(self, make_engine, clock):
        engine = make_engine()
        engine.start()
        engine.open_review()
        assert engine.status is AttemptStatus.REVIEW
        assert engine.timer.status is TimerState.PAUSED

        clock.advance(10)
        assert engine.pump() == 0
        assert engine.remaining_seconds == 60

        engine.close_review()
        clock.advance(3)
        assert engine.pump() == 3
        assert engine.remaining_seconds == 57

    def test_suspend_and_resume(self, make_engine, clock):
        engine = make_engine()
        engine.start()
        engine.suspend()
        clock.advance(10)
        assert engine.pump() == 0

        engine.resume()
        clock.advance(2)
        engine.pump()
        assert engine.remaining_seconds == 58


class TestQuestionFlow:

    def test_answers_are_saved(self, make_engine, store):
        engine = make_engine()
        engine.start()
        engine.answer_raw(0)
        assert store.load("mock-1").answers == {"q1": ChoiceIndex(0)}

    def test_invalid_answer_leaves_state(self, make_engine):
        engine = make_engine()
        engine.start()
        with pytest.raises(InvalidAnswerError):
            engine.answer_raw("first")
        assert engine.state.answers == {}

    def test_previous_stays_in_section(self, make_engine):
        engine = make_engine()
        engine.start()
        engine.next()
        assert engine.previous() is Move.PREVIOUS_QUESTION
        assert engine.previous() is Move.NONE

        engine.next()
        engine.next()
        assert engine.previous() is Move.NONE
        assert engine.state.cursor == (1, 0)

    def test_finishing_opens_review(self, make_engine):
        engine = make_engine()
        engine.start()
        for _ in range(3):
            engine.next()
        assert engine.is_final_question
        assert engine.next_label == "Finish Test"
        assert engine.next() is Move.COMPLETE
        assert engine.status is AttemptStatus.REVIEW

        summary = engine.review_summary()
        assert summary.unanswered == 4

    def test_no_changes_after_expiry(self, make_engine, clock):
        engine = make_engine(sink=RecordingSink(failures=1))
        engine.start()
        clock.advance(60)
        engine.pump()

        assert engine.expired and engine.locked
        engine.answer(Text("late"))
        assert engine.next() is Move.NONE
        assert engine.state.answers == {}


class TestSubmission:

    def test_cancel_keeps_session(self, make_engine, store, sink):
        engine = make_engine()
        engine.start()
        engine.answer(ChoiceIndex(1))

        engine.request_submit()
        assert engine.status is AttemptStatus.CONFIRMING
        engine.cancel_submit()
        assert engine.status is AttemptStatus.REVIEW
        assert sink.submissions == []
        assert store.load("mock-1").answers == {"q1": ChoiceIndex(1)}

        engine.close_review()
        assert engine.status is AttemptStatus.IN_PROGRESS

    def test_confirm_submits_and_clears(self, make_engine, store, sink):
        engine = make_engine()
        engine.start()
        assert engine.confirm_submit() is None

        engine.request_submit()
        receipt = engine.confirm_submit()

        assert receipt.result_id == "result-1"
        assert receipt.auto_submitted is False
        assert receipt.notice is None
        assert store.load("mock-1") is None
        assert engine.confirm_submit() is receipt
        assert engine.auto_submit() is receipt
        assert len(sink.submissions) == 1

    def test_failed_submission_keeps_session(self, make_engine, store):
        sink = RecordingSink(failures=1)
        engine = make_engine(sink=sink)
        engine.start()
        engine.answer(ChoiceIndex(3))
        engine.request_submit()

        with pytest.raises(SubmissionFailedError):
            engine.confirm_submit()

        assert engine.status is AttemptStatus.CONFIRMING
        assert engine.last_error is not None and engine.last_error.retryable
        assert store.load("mock-1").answers == {"q1": ChoiceIndex(3)}

        receipt = engine.retry_submit()
        assert receipt is not None and not receipt.auto_submitted
        assert engine.last_error is None
        assert store.load("mock-1") is None
        assert len(sink.submissions) == 1

    def test_failed_auto_submit_can_be_retried(self, make_engine, store, clock):
        sink = RecordingSink(failures=1)
        engine = make_engine(sink=sink)
        engine.start()

        clock.advance(60)
        engine.pump()

        assert engine.status is AttemptStatus.IN_PROGRESS
        assert isinstance(engine.last_error, SubmissionFailedError)
        assert store.load("mock-1").remaining_seconds["A"] == 0

        receipt = engine.retry_submit()
        assert receipt.auto_submitted
        assert engine.status is AttemptStatus.SUBMITTED
        assert store.load("mock-1") is None

    def test_auto_submit_needs_expired_timer(self, make_engine, store, sink):
        engine = make_engine()
        engine.start()

        assert engine.auto_submit() is None
        assert engine.status is AttemptStatus.IN_PROGRESS
        assert sink.submissions == []
        assert store.load("mock-1") is not None

    def test_expired_attempt_is_always_auto_submitted(self, make_engine, clock):
        sink = RecordingSink(failures=1)
        engine = make_engine(sink=sink)
        engine.start()
        clock.advance(60)
        engine.pump()

        engine.request_submit()
        assert engine.status is AttemptStatus.IN_PROGRESS
        assert engine.confirm_submit() is None

        engine.retry_submit()
        assert sink.submissions[0].auto_submitted is True
