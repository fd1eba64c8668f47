from __future__ import annotations
import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Forbidden, NotFound, ValidationError
from ..models import AUTO_GRADABLE_TYPES, CEFR_LEVELS, MANUAL_TYPES, QUESTION_TYPES, SKILLS, Question, Rubric
from .auth import User, get_current_user, require_roles

router = APIRouter(prefix="/questions", tags=["questions"])


def _parse_json(value: Any) -> Any:
	if isinstance(value, str):
		try:
			return json.loads(value)
		except ValueError:
			raise ValueError("options must be valid JSON")
	return value


def _answer_text(value: Any) -> Any:
	# Matching keys may be posted as a list/object; keep them as JSON text
	if isinstance(value, (list, dict)):
		return json.dumps(value, ensure_ascii=False)
	if value is not None and not isinstance(value, str):
		return str(value)
	return value


class QuestionCreateRequest(BaseModel):
	skill: str
	type: str
	level: str = "B1"
	content_text: str = Field(..., min_length=1)
	media_url: Optional[str] = None
	options: Optional[Any] = None
	correct_answer: Optional[Any] = None
	explanation: Optional[str] = None
	rubric_id: Optional[str] = None

	@field_validator("options", mode="before")
	@classmethod
	def parse_options(cls, value: Any) -> Any:
		return _parse_json(value)

	@field_validator("correct_answer", mode="before")
	@classmethod
	def encode_answer(cls, value: Any) -> Any:
		return _answer_text(value)


class QuestionUpdateRequest(BaseModel):
	skill: Optional[str] = None
	type: Optional[str] = None
	level: Optional[str] = None
	content_text: Optional[str] = Field(None, min_length=1)
	media_url: Optional[str] = None
	options: Optional[Any] = None
	correct_answer: Optional[Any] = None
	explanation: Optional[str] = None
	rubric_id: Optional[str] = None

	@field_validator("options", mode="before")
	@classmethod
	def parse_options(cls, value: Any) -> Any:
		return _parse_json(value)

	@field_validator("correct_answer", mode="before")
	@classmethod
	def encode_answer(cls, value: Any) -> Any:
		return _answer_text(value)


def question_view(q: Question, *, reveal_answer: bool = True) -> dict:
	data = {
		"id": q.id,
		"creator_id": q.creator_id,
		"skill": q.skill,
		"type": q.type,
		"level": q.level,
		"content_text": q.content_text,
		"media_url": q.media_url,
		"options": q.options,
		"rubric_id": q.rubric_id,
		"rubric_name": q.rubric.name if q.rubric else None,
		"created_at": q.created_at.isoformat() if q.created_at else None,
	}
	if reveal_answer:
		data["correct_answer"] = q.correct_answer
		data["explanation"] = q.explanation
	return data


def can_see_answer(q: Question, user: User) -> bool:
	return user.role == "admin" or q.creator_id == user.id


def validate_question(db: Session, q: Question) -> None:
	"""Auto-gradable types need an answer key; essay/recording need a rubric."""
	if q.skill not in SKILLS:
		raise ValidationError(f"skill must be one of {list(SKILLS)}")
	if q.type not in QUESTION_TYPES:
		raise ValidationError(f"type must be one of {list(QUESTION_TYPES)}")
	if q.level not in CEFR_LEVELS:
		raise ValidationError(f"level must be one of {list(CEFR_LEVELS)}")
	if q.type in AUTO_GRADABLE_TYPES and not (q.correct_answer or "").strip():
		raise ValidationError(f"correct_answer is required for {q.type} questions")
	if q.type in MANUAL_TYPES:
		if not q.rubric_id:
			raise ValidationError(f"rubric_id is required for {q.type} questions")
	if q.rubric_id and db.get(Rubric, q.rubric_id) is None:
		raise ValidationError("rubric not found")


def _get_owned_question(db: Session, question_id: str, user: User, action: str) -> Question:
	question = db.get(Question, question_id)
	if not question:
		raise NotFound("Question not found")
	if user.role == "teacher" and question.creator_id != user.id:
		raise Forbidden(f"You can only {action} your own questions")
	return question


@router.get("/")
def list_questions(
	skill: Optional[str] = None,
	type: Optional[str] = None,
	level: Optional[str] = None,
	limit: int = Query(50, ge=1, le=100),
	offset: int = Query(0, ge=0),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	query = db.query(Question)
	if skill:
		query = query.filter(Question.skill == skill)
	if type:
		query = query.filter(Question.type == type)
	if level:
		query = query.filter(Question.level == level)
	total = query.count()
	rows = query.order_by(Question.created_at.desc()).limit(limit).offset(offset).all()
	return {"count": total, "data": [question_view(q, reveal_answer=can_see_answer(q, user)) for q in rows]}


@router.get("/{question_id}")
def get_question(question_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	question = db.get(Question, question_id)
	if not question:
		raise NotFound("Question not found")
	return question_view(question, reveal_answer=can_see_answer(question, user))


@router.post("/", status_code=201)
def create_question(
	req: QuestionCreateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	question = Question(creator_id=user.id, **req.model_dump())
	validate_question(db, question)
	db.add(question)
	db.commit()
	db.refresh(question)
	return question_view(question)


@router.put("/{question_id}")
def update_question(
	question_id: str,
	req: QuestionUpdateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	question = _get_owned_question(db, question_id, user, "edit")
	for field, value in req.model_dump(exclude_unset=True).items():
		setattr(question, field, value)
	validate_question(db, question)
	db.commit()
	db.refresh(question)
	return question_view(question)


@router.delete("/{question_id}")
def delete_question(
	question_id: str,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	question = _get_owned_question(db, question_id, user, "delete")
	db.delete(question)
	db.commit()
	return {"ok": True}
