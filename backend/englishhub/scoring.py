"""
Exam scoring.

Pure functions: given the exam's questions (anything with ``id``, ``type`` and
``correct_answer`` attributes) and a learner's answers keyed by question id,
produce per-question outcomes and the aggregate score. Nothing here touches
the database, so the same input always yields the same result.
"""

from __future__ import annotations
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from .models import AUTO_GRADABLE_TYPES, MANUAL_TYPES


AUTO_GRADED = "auto_graded"
PENDING_MANUAL_REVIEW = "pending_manual_review"

_WHITESPACE = re.compile(r"\s+")


class QuestionOutcome(BaseModel):
	question_id: str
	type: str
	answer: Any = None
	is_correct: Optional[bool] = None
	points: int = 0
	review_status: str = AUTO_GRADED


class ScoreResult(BaseModel):
	outcomes: List[QuestionOutcome]
	awarded_points: int
	possible_points: int
	score: int
	pending_review: bool
	# None until every manually graded item has been reviewed
	passed: Optional[bool]

	@property
	def status(self) -> str:
		return "grading" if self.passed is None else "completed"


def normalize_text(value: Any) -> str:
	return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def _decode(value: Any) -> Any:
	# Matching answers may arrive (or be stored) as JSON text
	if isinstance(value, str):
		stripped = value.strip()
		if stripped[:1] in ("[", "{"):
			try:
				return json.loads(stripped)
			except ValueError:
				return value
	return value


def normalize_answer(value: Any) -> Any:
	value = _decode(value)
	if value is None:
		return None
	if isinstance(value, Mapping):
		return {normalize_text(k): normalize_answer(v) for k, v in value.items()}
	if isinstance(value, (list, tuple)):
		return [normalize_answer(v) for v in value]
	return normalize_text(value)


def is_blank(value: Any) -> bool:
	if value is None:
		return True
	if isinstance(value, str):
		return normalize_text(value) == ""
	if isinstance(value, (list, tuple, Mapping)):
		return len(value) == 0
	return False


def answers_match(submitted: Any, correct: Any) -> bool:
	if is_blank(submitted) or is_blank(correct):
		return False
	return normalize_answer(submitted) == normalize_answer(correct)


def percentage(awarded: int, possible: int) -> int:
	"""awarded/possible as a 0-100 integer, halves rounded up."""
	if possible <= 0:
		return 0
	return (awarded * 200 + possible) // (2 * possible)


def score_question(question: Any, submitted: Any) -> QuestionOutcome:
	qtype = question.type
	outcome = QuestionOutcome(question_id=str(question.id), type=qtype, answer=submitted)
	if qtype in MANUAL_TYPES:
		outcome.review_status = PENDING_MANUAL_REVIEW
		return outcome
	if qtype not in AUTO_GRADABLE_TYPES:
		raise ValueError(f"unknown question type: {qtype}")
	outcome.is_correct = answers_match(submitted, question.correct_answer)
	outcome.points = 1 if outcome.is_correct else 0
	return outcome


def score_answers(
	questions: Sequence[Any],
	answers: Mapping[str, Any],
	*,
	pass_score: int,
	grading_method: str = "auto",
) -> ScoreResult:
	outcomes = [score_question(q, answers.get(str(q.id))) for q in questions]
	awarded = sum(o.points for o in outcomes)
	possible = len(outcomes)
	score = percentage(awarded, possible)
	pending = any(o.review_status == PENDING_MANUAL_REVIEW for o in outcomes)
	if pending or grading_method in ("manual", "hybrid"):
		passed = None
	else:
		passed = score >= pass_score
	return ScoreResult(
		outcomes=outcomes,
		awarded_points=awarded,
		possible_points=possible,
		score=score,
		pending_review=pending,
		passed=passed,
	)


def summarize(result: ScoreResult) -> Dict[str, int]:
	correct = sum(1 for o in result.outcomes if o.is_correct)
	pending = sum(1 for o in result.outcomes if o.review_status == PENDING_MANUAL_REVIEW)
	return {
		"total_questions": len(result.outcomes),
		"correct_answers": correct,
		"wrong_answers": len(result.outcomes) - correct - pending,
		"pending_answers": pending,
	}
