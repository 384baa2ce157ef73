"""
IELTS Mock Test Engine - Streamlit UI
Test-taking page with section timers, review and results
"""

import streamlit as st
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import TIMER_CONFIG, SESSION_CONFIG
from core.exceptions import InvalidAnswerError, SubmissionFailedError, TestNotFoundError
from core.models import ChoiceIndex, QuestionType, Text, TriState, TriStateValue
from engine.analysis_engine import (
    IMPROVEMENT_TIPS,
    STRENGTH_NOTES,
    band_color,
    band_label,
    improvements,
    strengths,
)
from engine.exam_engine import AttemptStatus, TestSessionEngine
from engine.navigation import word_count_status
from engine.timer import format_time, is_warning
from storage.json_storage import ResultStorage, TestRepository
from storage.session_store import JsonSessionStore


# Page config
st.set_page_config(
    page_title="IELTS Mock Test",
    page_icon="📝",
    layout="wide",
    initial_sidebar_state="collapsed"
)

# Custom CSS
st.markdown("""
<style>
    .question-box {
        background: #f8f9fa;
        padding: 1.5rem;
        border-radius: 0.5rem;
        border-left: 4px solid #1f77b4;
        margin: 1rem 0;
    }
    .passage-box {
        background: #f3f4f6;
        padding: 1rem;
        border-radius: 0.5rem;
        font-size: 0.9rem;
        line-height: 1.6;
        margin-bottom: 1rem;
    }
    .timer {
        font-family: monospace;
        font-size: 1.4rem;
        text-align: right;
    }
    .timer-warning {
        color: #dc2626;
    }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables"""
    if 'current_page' not in st.session_state:
        st.session_state.current_page = 'login'

    if 'user_id' not in st.session_state:
        st.session_state.user_id = None

    if 'active_test_id' not in st.session_state:
        st.session_state.active_test_id = None

    # (user, test) -> TestSessionEngine
    if 'engines' not in st.session_state:
        st.session_state.engines = {}


def go_to(page: str, test_id: str = None):
    if page != 'test':
        for engine in st.session_state.engines.values():
            engine.suspend()
    st.session_state.current_page = page
    if test_id is not None:
        st.session_state.active_test_id = test_id
    st.rerun()


def get_engine(test_id: str) -> TestSessionEngine:
    """One engine per (user, test) for the lifetime of the browser session"""
    user_id = st.session_state.user_id
    key = f"{user_id}:{test_id}"
    if key not in st.session_state.engines:
        st.session_state.engines[key] = TestSessionEngine(
            test_id,
            provider=TestRepository(),
            store=JsonSessionStore(user_id),
            sink=ResultStorage(),
        )
    return st.session_state.engines[key]


def drop_engine(test_id: str):
    key = f"{st.session_state.user_id}:{test_id}"
    st.session_state.engines.pop(key, None)


# ══════════════════════════════════════════════
# LOGIN / DASHBOARD
# ══════════════════════════════════════════════

def render_login():
    st.header("📝 IELTS Mock Test - Sign In")

    user_id = st.text_input("Student ID").strip()

    if st.button("Continue", type="primary"):
        try:
            JsonSessionStore(user_id)
        except ValueError:
            st.error("Please enter a valid student ID")
            return
        st.session_state.user_id = user_id
        go_to(SESSION_CONFIG.fallback_page)


def render_dashboard():
    user_id = st.session_state.user_id
    st.header("📚 My Tests")
    st.caption(f"Signed in as {user_id}")

    tests = TestRepository().list_tests()
    if not tests:
        st.info("No tests are available yet.")
        return

    in_progress = set(JsonSessionStore(user_id).list_test_ids())
    results = ResultStorage()

    for test in tests:
        with st.container(border=True):
            st.subheader(test.title)
            if test.description:
                st.markdown(test.description)
            st.caption(" | ".join(
                f"{s.name}: {s.duration_seconds // 60} min" for s in test.sections
            ))

            col1, col2 = st.columns(2)
            with col1:
                label = "▶️ Resume Test" if test.id in in_progress else "🎯 Start Test"
                if st.button(label, key=f"start_{test.id}", type="primary"):
                    go_to('test', test.id)
            with col2:
                if results.result_exists(user_id, test.id):
                    if st.button("📊 View Result", key=f"result_{test.id}"):
                        go_to('result', test.id)

    st.markdown("---")
    if st.button("Sign out"):
        st.session_state.user_id = None
        st.session_state.engines = {}
        go_to('login')


# ══════════════════════════════════════════════
# TEST PAGE
# ══════════════════════════════════════════════

def render_test_not_found(reason: str):
    st.error(f"❌ Test Not Found ({reason})")
    if st.button("🏠 Return to Dashboard"):
        go_to(SESSION_CONFIG.fallback_page)
    st.stop()


@st.fragment(run_every=TIMER_CONFIG.tick_seconds)
def render_timer(engine: TestSessionEngine):
    """Drives the countdown; reruns the page when time runs out"""
    engine.pump()

    if engine.status is AttemptStatus.SUBMITTED or engine.expired:
        st.rerun()

    remaining = engine.remaining_seconds
    css = "timer timer-warning" if is_warning(remaining) else "timer"
    st.markdown(f'<div class="{css}">⏱ {format_time(remaining)}</div>', unsafe_allow_html=True)


def _record_answer(engine: TestSessionEngine, key: str):
    try:
        engine.answer_raw(st.session_state[key])
    except InvalidAnswerError as e:
        st.session_state.answer_error = str(e)


def render_answer_input(engine: TestSessionEngine, question):
    key = f"answer_{engine.test_id}_{question.id}"
    current = engine.answer_for(question.id)

    if question.type is QuestionType.SINGLE_CHOICE:
        st.radio(
            "Select your answer:",
            options=list(range(len(question.options))),
            format_func=lambda i: question.options[i],
            index=current.index if isinstance(current, ChoiceIndex) else None,
            key=key,
            on_change=_record_answer,
            args=(engine, key),
        )

    elif question.type is QuestionType.TRI_STATE:
        choices = list(TriStateValue)
        st.radio(
            "Select your answer:",
            options=choices,
            format_func=lambda v: v.value,
            index=choices.index(current.value) if isinstance(current, TriState) else None,
            key=key,
            on_change=_record_answer,
            args=(engine, key),
        )

    elif question.type is QuestionType.SHORT_TEXT:
        st.text_input(
            "Your answer",
            value=current.text if isinstance(current, Text) else "",
            placeholder="Enter your answer",
            key=key,
            on_change=_record_answer,
            args=(engine, key),
        )

    else:
        if question.min_words:
            st.caption(f"Minimum words: {question.min_words}")
        st.text_area(
            "Your response",
            value=current.text if isinstance(current, Text) else "",
            placeholder="Write your response here...",
            height=360,
            key=key,
            on_change=_record_answer,
            args=(engine, key),
        )
        words, enough = word_count_status(question, engine.answer_for(question.id))
        if enough:
            st.caption(f"Word count: {words}")
        else:
            st.caption(f":orange[Word count: {words}]")

    error = st.session_state.pop('answer_error', None)
    if error:
        st.warning(error)


def render_test():
    test_id = st.session_state.active_test_id
    engine = get_engine(test_id)

    try:
        engine.start()
    except TestNotFoundError as e:
        drop_engine(test_id)
        render_test_not_found(e.reason)

    if engine.status is AttemptStatus.SUBMITTED:
        go_to('result', test_id)

    if engine.expired:
        render_pending_auto_submit(engine)
        return

    if engine.status in (AttemptStatus.REVIEW, AttemptStatus.CONFIRMING):
        render_review(engine)
        return

    test = engine.test
    section = engine.current_section
    question = engine.current_question
    state = engine.state
    question_number = state.current_question_index + 1

    # ── Header ──
    col1, col2, col3 = st.columns([3, 1, 1])
    with col1:
        st.markdown(f"### {test.title}")
        st.caption(f"{section.name} - Question {question_number} of {len(engine.section_questions)}")
    with col2:
        render_timer(engine)
    with col3:
        if st.button("📋 Review", use_container_width=True):
            engine.open_review()
            st.rerun()

    if engine.resumed:
        st.toast("Resumed where you left off")
        engine.resumed = False

    st.markdown("---")

    # ── Question ──
    if question.passage:
        st.markdown("**Reading Passage**")
        st.markdown(f'<div class="passage-box">{question.passage}</div>', unsafe_allow_html=True)

    st.markdown(f"""
        <div class="question-box">
            <strong>Question {question_number}:</strong> {question.prompt}
        </div>
    """, unsafe_allow_html=True)

    render_answer_input(engine, question)

    st.markdown("---")

    # ── Navigation ──
    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if st.button("⬅️ Previous", disabled=state.current_question_index == 0):
            engine.previous()
            st.rerun()
    with col2:
        st.caption(f"Section {state.current_section_index + 1} of {len(test.sections)}")
    with col3:
        if st.button(engine.next_label, type="primary"):
            engine.next()
            st.rerun()


def render_pending_auto_submit(engine: TestSessionEngine):
    st.error(TIMER_CONFIG.auto_submit_notice)
    st.warning(f"Your answers could not be saved yet: {engine.last_error}")
    if st.button("🔁 Retry Submission", type="primary"):
        try:
            engine.retry_submit()
        except SubmissionFailedError as e:
            st.error(f"Still failing: {e.cause}")
            return
        go_to('result', engine.test_id)


def render_review(engine: TestSessionEngine):
    st.header("📋 Review Your Answers")

    summary = engine.review_summary()
    for section in summary.sections:
        with st.container(border=True):
            st.markdown(f"**{section.name}**")
            st.progress(
                section.percent / 100,
                f"Answered: {section.answered} / {section.total}",
            )

    if engine.status is AttemptStatus.CONFIRMING:
        st.markdown("---")
        if summary.unanswered:
            st.warning(f"⚠️ You have {summary.unanswered} unanswered questions!")
        st.error("Are you sure you want to submit your test? This action cannot be undone.")
        c1, c2 = st.columns(2)
        with c1:
            if st.button("✅ Yes, Submit Now", type="primary"):
                try:
                    engine.confirm_submit()
                except SubmissionFailedError as e:
                    st.error(f"Submission failed, please try again: {e.cause}")
                    return
                go_to('result', engine.test_id)
        with c2:
            if st.button("❌ No, Go Back"):
                engine.cancel_submit()
                st.rerun()
        return

    c1, c2 = st.columns(2)
    with c1:
        if st.button("⬅️ Continue Test"):
            engine.close_review()
            st.rerun()
    with c2:
        if st.button("📤 Submit Test", type="primary"):
            engine.request_submit()
            st.rerun()


# ══════════════════════════════════════════════
# RESULT PAGE
# ══════════════════════════════════════════════

def render_result():
    test_id = st.session_state.active_test_id
    user_id = st.session_state.user_id

    key = f"{user_id}:{test_id}"
    engine = st.session_state.engines.get(key)
    if engine and engine.receipt and engine.receipt.notice:
        st.warning(engine.receipt.notice)

    record = ResultStorage().load_result(user_id, test_id)
    tests = {t.id: t for t in TestRepository().list_tests()}
    test = tests.get(test_id)

    if not record or not test:
        st.error("Result Not Found")
        if st.button("🏠 Return to Dashboard"):
            go_to(SESSION_CONFIG.fallback_page)
        return

    st.header("📊 Test Results")
    st.caption(test.title)
    st.success("✅ Test Submitted Successfully!")

    scores = record.get("scores") or {}
    overall = scores.get("overall")
    if overall is not None:
        st.markdown(f"## :{band_color(overall)}[Overall band {overall} - {band_label(overall)}]")
    else:
        st.info("Band scores will appear here once your writing has been reviewed.")

    cols = st.columns(len(test.sections))
    for col, section in zip(cols, test.sections):
        section_result = record.get("sectionResults", {}).get(section.id, {})
        with col:
            st.markdown(f"### {section.name}")
            band = scores.get(section.id)
            if band is not None:
                st.markdown(f":{band_color(band)}[**{band}** {band_label(band)}]")
            if section_result.get("gradableQuestions"):
                st.metric(
                    "Correct",
                    f"{section_result['correctAnswers']}/{section_result['gradableQuestions']}",
                )
            st.caption(
                f"Answered {section_result.get('answered', 0)}/{section_result.get('totalQuestions', 0)}"
                f" | Time: {section_result.get('timeSpent', 0)} min"
            )

    strong = strengths(scores)
    weak = improvements(scores)
    if strong or weak:
        col1, col2 = st.columns(2)
        with col1:
            st.markdown("#### Strengths")
            for section_id, band in strong:
                note = STRENGTH_NOTES.get(section_id, section_id.capitalize())
                st.markdown(f":green[✓ {note} ({band})]")
        with col2:
            st.markdown("#### Areas for Improvement")
            for section_id, band in weak:
                tip = IMPROVEMENT_TIPS.get(section_id, f"Practise {section_id}")
                st.markdown(f":orange[! {tip} ({band})]")

    st.markdown("---")
    if st.button("🏠 Back to Dashboard"):
        drop_engine(test_id)
        go_to(SESSION_CONFIG.fallback_page)


def main():
    init_session_state()

    page = st.session_state.current_page
    if not st.session_state.user_id:
        page = 'login'

    if page == 'login':
        render_login()
    elif page == 'dashboard':
        render_dashboard()
    elif page == 'test':
        render_test()
    elif page == 'result':
        render_result()
    else:
        render_dashboard()


if __name__ == "__main__":
    main()
