"""JSON Storage Module for test definitions, questions and results"""

import json
from pathlib import Path
from typing import List, Dict, Optional, Tuple
from datetime import datetime
import logging

from config.settings import QUESTIONS_FILE, RESULTS_DIR, TESTS_FILE
from core.exceptions import SubmissionError, TestNotFoundError
from core.models import AttemptSubmission, Question, QuestionType, TestDefinition
from storage.session_store import check_name

logger = logging.getLogger(__name__)


class TestRepository:
    """
    Read-only provider of test definitions and their questions.
    Files follow the web app's public data layout (tests.json, questions.json).
    """

    __test__ = False

    def __init__(self, tests_file: Path = TESTS_FILE, questions_file: Path = QUESTIONS_FILE):
        self.tests_file = Path(tests_file)
        self.questions_file = Path(questions_file)

    def _read_list(self, path: Path) -> List[Dict]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path.name} must contain a JSON list")
        return data

    def list_tests(self) -> List[TestDefinition]:
        if not self.tests_file.exists():
            logger.warning(f"Tests file not found: {self.tests_file}")
            return []

        try:
            return [TestDefinition.from_dict(t) for t in self._read_list(self.tests_file)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load tests: {e}")
            return []

    def load_test(self, test_id: str) -> Tuple[TestDefinition, List[Question]]:
        """Test definition plus its questions; raises TestNotFoundError"""
        try:
            tests = self._read_list(self.tests_file)
            raw_questions = self._read_list(self.questions_file)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read test data for {test_id}: {e}")
            raise TestNotFoundError(test_id, f"data unavailable ({e})") from e

        raw_test = next((t for t in tests if t.get("id") == test_id), None)
        if raw_test is None:
            raise TestNotFoundError(test_id)

        try:
            test = TestDefinition.from_dict(raw_test)
        except (ValueError, KeyError, TypeError) as e:
            raise TestNotFoundError(test_id, f"malformed definition ({e})") from e
        if not test.sections:
            raise TestNotFoundError(test_id, "no sections")

        questions = []
        for q_data in raw_questions:
            if q_data.get("testId") != test_id:
                continue
            try:
                question = Question.from_dict(q_data)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed question {q_data.get('id')}: {e}")
                continue
            if question.section_id not in test.section_ids:
                logger.warning(f"Skipping question {question.id}: unknown section {question.section_id}")
                continue
            questions.append(question)

        if not questions:
            raise TestNotFoundError(test_id, "no questions")

        logger.info(f"Loaded test {test_id} with {len(questions)} questions")
        return test, questions

    def validate(self) -> List[Dict]:
        """Per-test consistency report for the data files"""
        raw_questions = self._read_list(self.questions_file) if self.questions_file.exists() else []
        report = []

        for test in self.list_tests():
            own = [q for q in raw_questions if q.get("testId") == test.id]
            sections = []
            for section in test.sections:
                actual = sum(1 for q in own if q.get("section") == section.id)
                sections.append({
                    "id": section.id,
                    "declared": section.expected_questions,
                    "actual": actual,
                    "duration_seconds": section.duration_seconds,
                })

            unknown_sections = sorted(
                q.get("id", "?") for q in own if q.get("section") not in test.section_ids
            )
            bad_types = []
            for q in own:
                try:
                    QuestionType.from_tag(q.get("type"))
                except ValueError:
                    bad_types.append(q.get("id", "?"))

            report.append({
                "test_id": test.id,
                "title": test.title,
                "sections": sections,
                "unknown_sections": unknown_sections,
                "bad_types": sorted(bad_types),
                "ok": not unknown_sections and not bad_types
                      and all(s["declared"] in (0, s["actual"]) for s in sections),
            })

        return report


# ===========================
# Result Storage
# ===========================

class ResultStorage:
    """
    Submission sink for finalized attempts.
    One JSON record per (user, test); a new attempt replaces the old record.
    """

    def __init__(self, base_dir: Path = RESULTS_DIR):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, user_id: str, test_id: str) -> Path:
        user_dir = self.base_dir / check_name(user_id, "user id")
        return user_dir / f"{check_name(test_id, 'test id')}.json"

    def submit(self, submission: AttemptSubmission) -> str:
        """Persist a finalized attempt and return its result id"""
        result_id = (
            f"{submission.user_id}_{submission.test_id}_"
            f"{submission.completed_at.strftime('%Y%m%d_%H%M%S')}"
        )
        record = {
            "id": result_id,
            "status": "completed",
            "savedAt": datetime.now().isoformat(),
            **submission.to_dict(),
        }

        path = self._path(submission.user_id, submission.test_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to save result {result_id}: {e}")
            raise SubmissionError(str(e)) from e

        logger.info(
            f"Saved result for user={submission.user_id} test={submission.test_id}"
        )
        return result_id

    def result_exists(self, user_id: str, test_id: str) -> bool:
        return self._path(user_id, test_id).exists()

    def load_result(self, user_id: str, test_id: str) -> Optional[Dict]:
        path = self._path(user_id, test_id)
        if not path.exists():
            return None

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_user_results(self, user_id: str) -> List[Dict]:
        user_dir = self.base_dir / check_name(user_id, "user id")
        if not user_dir.exists():
            return []

        results = []
        for path in user_dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    results.append(json.load(f))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable result {path}: {e}")
        return sorted(results, key=lambda r: r.get("completedAt", ""), reverse=True)
