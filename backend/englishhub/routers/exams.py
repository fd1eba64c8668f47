"""
Exam router.

Public browsing of published exams, teacher/admin authoring, the admin
review workflow (teachers submit, admins approve or reject), and learner
submission. Teachers cannot publish an exam until it is approved.
Scoring itself lives in ``scoring``; persisting a submission in
``submissions``.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Forbidden, NotFound, ValidationError
from ..models import APPROVAL_STATUSES, EXAM_STATUSES, GRADING_METHODS, Exam, ExamSubmission, Question
from ..scoring import summarize
from ..submissions import load_exam_questions, submission_summary, submit_exam
from .auth import User, get_current_user, get_optional_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exams", tags=["exams"])

DEFAULT_REJECTION_REASON = "Does not meet the requirements"

Scalar = Union[str, int, float]
AnswerValue = Union[Scalar, List[Scalar], Dict[str, Scalar], None]


def _parse_id_list(value: Any) -> Any:
	# Accept a JSON-encoded array as well as a real one
	if isinstance(value, str):
		try:
			value = json.loads(value)
		except ValueError:
			raise ValueError("list_question_ids must be a valid JSON array")
	return value


class ExamCreateRequest(BaseModel):
	title: str = Field(..., min_length=1, max_length=255)
	description: Optional[str] = None
	duration_minutes: int = Field(60, ge=1, le=600)
	pass_score: int = Field(60, ge=0, le=100)
	grading_method: str = "auto"
	list_question_ids: List[str] = Field(default_factory=list)
	status: str = "draft"

	@field_validator("list_question_ids", mode="before")
	@classmethod
	def parse_question_ids(cls, value: Any) -> Any:
		return _parse_id_list(value)


class ExamUpdateRequest(BaseModel):
	title: Optional[str] = Field(None, min_length=1, max_length=255)
	description: Optional[str] = None
	duration_minutes: Optional[int] = Field(None, ge=1, le=600)
	pass_score: Optional[int] = Field(None, ge=0, le=100)
	grading_method: Optional[str] = None
	list_question_ids: Optional[List[str]] = None
	status: Optional[str] = None

	@field_validator("list_question_ids", mode="before")
	@classmethod
	def parse_question_ids(cls, value: Any) -> Any:
		return _parse_id_list(value)


class RejectRequest(BaseModel):
	reason: Optional[str] = Field(None, max_length=2000)


class SubmitRequest(BaseModel):
	answers: Dict[str, AnswerValue] = Field(default_factory=dict)
	time_spent: int = Field(0, ge=0)


def _exam_summary(exam: Exam) -> dict:
	return {
		"id": exam.id,
		"creator_id": exam.creator_id,
		"creator_email": exam.creator.email if exam.creator else None,
		"title": exam.title,
		"description": exam.description,
		"duration_minutes": exam.duration_minutes,
		"pass_score": exam.pass_score,
		"grading_method": exam.grading_method,
		"list_question_ids": list(exam.list_question_ids or []),
		"question_count": len(exam.list_question_ids or []),
		"status": exam.status,
		"approval_status": exam.approval_status,
		"rejection_reason": exam.rejection_reason,
		"created_at": exam.created_at.isoformat() if exam.created_at else None,
	}


def _question_view(q: Question, *, reveal_answer: bool) -> dict:
	data = {
		"id": q.id,
		"skill": q.skill,
		"type": q.type,
		"level": q.level,
		"content_text": q.content_text,
		"media_url": q.media_url,
		"options": q.options,
		"rubric_id": q.rubric_id,
	}
	if reveal_answer:
		data["correct_answer"] = q.correct_answer
		data["explanation"] = q.explanation
	return data


def _check_choice(value: Optional[str], allowed: tuple, field: str) -> None:
	if value is not None and value not in allowed:
		raise ValidationError(f"{field} must be one of {list(allowed)}")


def _check_question_ids(db: Session, ids: List[str]) -> None:
	if not ids:
		return
	found = {row.id for row in db.query(Question.id).filter(Question.id.in_(ids)).all()}
	missing = [i for i in ids if i not in found]
	if missing:
		raise ValidationError(f"unknown question ids: {', '.join(missing)}")


def _get_owned_exam(db: Session, exam_id: str, user: User, action: str) -> Exam:
	exam = db.get(Exam, exam_id)
	if not exam:
		raise NotFound("Exam not found")
	if user.role == "teacher" and exam.creator_id != user.id:
		raise Forbidden(f"You can only {action} your own exams")
	return exam


def _paginate(query, limit: int, offset: int):
	total = query.count()
	rows = query.order_by(Exam.created_at.desc()).limit(limit).offset(offset).all()
	return {"count": total, "data": [_exam_summary(e) for e in rows]}


@router.get("/published")
def list_published_exams(
	limit: int = Query(50, ge=1, le=100),
	offset: int = Query(0, ge=0),
	db: Session = Depends(get_db),
):
	return _paginate(db.query(Exam).filter(Exam.status == "published"), limit, offset)


@router.get("/my-submissions")
def my_submissions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(ExamSubmission)
		.filter(ExamSubmission.learner_id == user.id)
		.order_by(ExamSubmission.submitted_at.desc())
		.all()
	)
	return {"data": [submission_summary(s) for s in rows]}


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	submission = db.get(ExamSubmission, submission_id)
	if not submission:
		raise NotFound("Submission not found")
	exam = submission.exam
	allowed = (
		user.role == "admin"
		or submission.learner_id == user.id
		or (exam is not None and exam.creator_id == user.id)
	)
	if not allowed:
		raise Forbidden("You cannot view this submission")
	return {
		**submission_summary(submission),
		"answers": [
			{
				"question_id": a.question_id,
				"answer": a.answer,
				"is_correct": a.is_correct,
				"score": a.score,
				"review_status": a.review_status,
			}
			for a in submission.answers
		],
	}


@router.get("/")
def list_exams(
	status: Optional[str] = None,
	approval_status: Optional[str] = None,
	limit: int = Query(50, ge=1, le=100),
	offset: int = Query(0, ge=0),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	_check_choice(status, EXAM_STATUSES, "status")
	_check_choice(approval_status, APPROVAL_STATUSES, "approval_status")
	query = db.query(Exam)
	if user.role == "learner":
		query = query.filter(Exam.status == "published")
	else:
		if status:
			query = query.filter(Exam.status == status)
		if approval_status:
			query = query.filter(Exam.approval_status == approval_status)
	return _paginate(query, limit, offset)


@router.get("/{exam_id}")
def get_exam(exam_id: str, user: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
	exam = db.get(Exam, exam_id)
	if not exam:
		raise NotFound("Exam not found")
	is_staff = user is not None and (user.role == "admin" or exam.creator_id == user.id)
	if exam.status != "published" and not is_staff:
		raise NotFound("Exam not found")
	# Answer keys only go to the exam's author and admins
	questions = load_exam_questions(db, exam)
	return {**_exam_summary(exam), "questions": [_question_view(q, reveal_answer=is_staff) for q in questions]}


@router.post("/", status_code=201)
def create_exam(
	req: ExamCreateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	_check_choice(req.grading_method, GRADING_METHODS, "grading_method")
	_check_choice(req.status, EXAM_STATUSES, "status")
	_check_question_ids(db, req.list_question_ids)
	if user.role != "admin" and req.status == "published":
		raise Forbidden("Exams must be approved by an admin before publishing")
	exam = Exam(creator_id=user.id, **req.model_dump())
	# Admin-created exams skip review
	if user.role == "admin":
		exam.approval_status = "approved"
	db.add(exam)
	db.commit()
	db.refresh(exam)
	return _exam_summary(exam)


@router.put("/{exam_id}")
def update_exam(
	exam_id: str,
	req: ExamUpdateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	exam = _get_owned_exam(db, exam_id, user, "edit")
	updates = req.model_dump(exclude_unset=True)
	previous_ids = list(exam.list_question_ids or [])
	_check_choice(updates.get("grading_method"), GRADING_METHODS, "grading_method")
	_check_choice(updates.get("status"), EXAM_STATUSES, "status")
	if updates.get("list_question_ids") is not None:
		_check_question_ids(db, updates["list_question_ids"])
	for field, value in updates.items():
		if value is None and field != "description":
			continue
		setattr(exam, field, value)

	if user.role == "admin":
		if updates.get("status") == "published":
			exam.approval_status = "approved"
	else:
		# A changed question list needs another review
		questions_changed = updates.get("list_question_ids") not in (None, previous_ids)
		if questions_changed and exam.approval_status != "draft":
			exam.approval_status = "draft"
			if exam.status == "published" and updates.get("status") != "published":
				exam.status = "draft"
		if updates.get("status") == "published" and exam.approval_status != "approved":
			raise Forbidden("Exams must be approved by an admin before publishing")
	db.commit()
	db.refresh(exam)
	return _exam_summary(exam)


@router.delete("/{exam_id}")
def delete_exam(
	exam_id: str,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	exam = _get_owned_exam(db, exam_id, user, "delete")
	db.delete(exam)
	db.commit()
	logger.info("exam %s deleted by %s", exam_id, user.id)
	return {"ok": True}


@router.put("/{exam_id}/submit-review")
def submit_for_review(
	exam_id: str,
	user: User = Depends(require_roles("teacher")),
	db: Session = Depends(get_db),
):
	exam = db.get(Exam, exam_id)
	if not exam or exam.creator_id != user.id:
		raise NotFound("Exam not found or not owned by you")
	if not exam.list_question_ids:
		raise ValidationError("An exam needs at least one question before review")
	if exam.approval_status == "approved":
		raise HTTPException(status_code=409, detail="exam is already approved")
	exam.approval_status = "pending_review"
	exam.rejection_reason = None
	db.commit()
	db.refresh(exam)
	logger.info("exam %s submitted for review by %s", exam.id, user.id)
	return _exam_summary(exam)


@router.put("/{exam_id}/approve")
def approve_exam(
	exam_id: str,
	user: User = Depends(require_roles("admin")),
	db: Session = Depends(get_db),
):
	exam = db.get(Exam, exam_id)
	if not exam:
		raise NotFound("Exam not found")
	exam.approval_status = "approved"
	exam.status = "published"
	exam.rejection_reason = None
	db.commit()
	db.refresh(exam)
	logger.info("exam %s approved by %s", exam.id, user.id)
	return _exam_summary(exam)


@router.put("/{exam_id}/reject")
def reject_exam(
	exam_id: str,
	req: RejectRequest,
	user: User = Depends(require_roles("admin")),
	db: Session = Depends(get_db),
):
	exam = db.get(Exam, exam_id)
	if not exam:
		raise NotFound("Exam not found")
	exam.approval_status = "rejected"
	exam.rejection_reason = (req.reason or "").strip() or DEFAULT_REJECTION_REASON
	# A rejected exam cannot stay visible to learners
	if exam.status == "published":
		exam.status = "draft"
	db.commit()
	db.refresh(exam)
	logger.info("exam %s rejected by %s", exam.id, user.id)
	return _exam_summary(exam)


@router.post("/{exam_id}/submit")
def submit(
	exam_id: str,
	req: SubmitRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	submission, result, questions = submit_exam(db, exam_id, user.id, req.answers, time_spent=req.time_spent)
	by_id = {q.id: q for q in questions}
	return {
		**submission_summary(submission),
		**summarize(result),
		"pending_review": result.pending_review,
		"answers": [
			{
				**o.model_dump(),
				"correct_answer": by_id[o.question_id].correct_answer,
				"explanation": by_id[o.question_id].explanation,
			}
			for o in result.outcomes
		],
	}


@router.get("/{exam_id}/submissions")
def exam_submissions(
	exam_id: str,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	exam = _get_owned_exam(db, exam_id, user, "view submissions of")
	rows = (
		db.query(ExamSubmission)
		.filter(ExamSubmission.exam_id == exam.id)
		.order_by(ExamSubmission.submitted_at.desc())
		.all()
	)
	return {"data": [submission_summary(s) for s in rows]}
