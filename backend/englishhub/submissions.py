from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import NotFound
from .models import Exam, ExamSubmission, Question, SubmissionAnswer
from .scoring import ScoreResult, score_answers

logger = logging.getLogger(__name__)


def load_exam_questions(db: Session, exam: Exam) -> List[Question]:
	"""Questions referenced by the exam, in the exam's order. Dangling ids are skipped."""
	ids = [str(i) for i in (exam.list_question_ids or [])]
	if not ids:
		return []
	rows = {q.id: q for q in db.query(Question).filter(Question.id.in_(ids)).all()}
	missing = [i for i in ids if i not in rows]
	if missing:
		logger.warning("exam %s references missing questions: %s", exam.id, ", ".join(missing))
	seen = set()
	ordered = []
	for i in ids:
		if i in rows and i not in seen:
			seen.add(i)
			ordered.append(rows[i])
	return ordered


def next_attempt(db: Session, exam_id: str, learner_id: str) -> int:
	count = (
		db.query(func.count(ExamSubmission.id))
		.filter(ExamSubmission.exam_id == exam_id, ExamSubmission.learner_id == learner_id)
		.scalar()
	)
	return (count or 0) + 1


def submit_exam(
	db: Session,
	exam_id: str,
	learner_id: str,
	answers: Mapping[str, Any],
	*,
	time_spent: int = 0,
) -> tuple[ExamSubmission, ScoreResult, List[Question]]:
	exam = db.get(Exam, exam_id)
	if exam is None or exam.status != "published":
		raise NotFound("Exam not found")
	questions = load_exam_questions(db, exam)
	result = score_answers(questions, answers, pass_score=exam.pass_score, grading_method=exam.grading_method)

	submission = ExamSubmission(
		exam_id=exam.id,
		learner_id=learner_id,
		attempt=next_attempt(db, exam.id, learner_id),
		time_spent_seconds=max(0, int(time_spent or 0)),
		total_score=result.score,
		awarded_points=result.awarded_points,
		possible_points=result.possible_points,
		passed=result.passed,
		status=result.status,
	)
	for outcome in result.outcomes:
		submission.answers.append(SubmissionAnswer(
			question_id=outcome.question_id,
			answer=outcome.answer,
			is_correct=outcome.is_correct,
			score=outcome.points,
			review_status=outcome.review_status,
		))
	db.add(submission)
	db.commit()
	db.refresh(submission)
	logger.info(
		"submission %s exam=%s learner=%s attempt=%d score=%d status=%s",
		submission.id, exam.id, learner_id, submission.attempt, result.score, result.status,
	)
	return submission, result, questions


def passed_label(passed: Optional[bool]) -> str:
	if passed is None:
		return "pending"
	return "passed" if passed else "failed"


def submission_summary(submission: ExamSubmission) -> Dict[str, Any]:
	exam = submission.exam
	return {
		"id": submission.id,
		"exam_id": submission.exam_id,
		"exam_title": exam.title if exam else None,
		"learner_id": submission.learner_id,
		"attempt": submission.attempt,
		"score": submission.total_score,
		"max_score": 100,
		"awarded_points": submission.awarded_points,
		"possible_points": submission.possible_points,
		"pass_score": exam.pass_score if exam else None,
		"passed": submission.passed,
		"outcome": passed_label(submission.passed),
		"status": submission.status,
		"time_spent": submission.time_spent_seconds,
		"submitted_at": submission.submitted_at.isoformat() if submission.submitted_at else None,
	}
