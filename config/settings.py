"""
Configuration settings for the IELTS Mock Test Engine
All constants and configurable parameters in one place
"""

from pathlib import Path
from dataclasses import dataclass
import os

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("IELTS_DATA_DIR", BASE_DIR / "data"))
SESSIONS_DIR = DATA_DIR / "sessions"
RESULTS_DIR = DATA_DIR / "results"
TESTS_FILE = DATA_DIR / "tests.json"
QUESTIONS_FILE = DATA_DIR / "questions.json"

# Ensure directories exist
for dir_path in [DATA_DIR, SESSIONS_DIR, RESULTS_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)


@dataclass
class TimerConfig:
    """Configuration for the section countdown"""

    # Seconds of wall-clock time per decrement
    tick_seconds: int = 1

    # Clock turns red below this many seconds
    warning_threshold_seconds: int = 300

    auto_submit_notice: str = "Time is up! Your test has been automatically submitted."


@dataclass
class SessionConfig:
    """Configuration for persisted test sessions"""

    key_prefix: str = "test_session_"
    fallback_page: str = "dashboard"


@dataclass
class BandConfig:
    """IELTS band thresholds used on the result view"""

    excellent: float = 8.0
    good: float = 6.5
    satisfactory: float = 5.5

    # Section bands at or above this are listed as strengths
    strength: float = 7.0

    # Section bands below this are listed as areas for improvement
    improvement: float = 6.5


# Global config instances
TIMER_CONFIG = TimerConfig()
SESSION_CONFIG = SessionConfig()
BAND_CONFIG = BandConfig()
