from __future__ import annotations
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Forbidden, NotFound, ValidationError
from ..models import CEFR_LEVELS, Course, Lesson
from .auth import User, get_optional_user, require_roles

router = APIRouter(prefix="/courses", tags=["courses"])


class CourseCreateRequest(BaseModel):
	title: str = Field(..., min_length=1, max_length=255)
	description: Optional[str] = None
	category: Optional[str] = Field(None, max_length=100)
	level: str = "B1"
	price: Decimal = Field(Decimal("0"), ge=0)
	thumbnail_url: Optional[str] = None
	is_published: bool = False


class CourseUpdateRequest(BaseModel):
	title: Optional[str] = Field(None, min_length=1, max_length=255)
	description: Optional[str] = None
	category: Optional[str] = Field(None, max_length=100)
	level: Optional[str] = None
	price: Optional[Decimal] = Field(None, ge=0)
	thumbnail_url: Optional[str] = None
	is_published: Optional[bool] = None


def lesson_view(lesson: Lesson) -> dict:
	return {
		"id": lesson.id,
		"course_id": lesson.course_id,
		"title": lesson.title,
		"description": lesson.description,
		"content_type": lesson.content_type,
		"content_url": lesson.content_url,
		"duration_minutes": lesson.duration_minutes,
		"order_index": lesson.order_index,
		"is_free": lesson.is_free,
	}


def course_view(course: Course) -> dict:
	return {
		"id": course.id,
		"teacher_id": course.teacher_id,
		"teacher_name": course.teacher.full_name if course.teacher else None,
		"title": course.title,
		"description": course.description,
		"category": course.category,
		"level": course.level,
		"price": float(course.price or 0),
		"thumbnail_url": course.thumbnail_url,
		"is_published": course.is_published,
		"total_lessons": course.total_lessons,
		"created_at": course.created_at.isoformat() if course.created_at else None,
	}


def can_manage(course: Course, user: Optional[User]) -> bool:
	if user is None:
		return False
	return user.role == "admin" or (user.role == "teacher" and course.teacher_id == user.id)


def get_visible_course(db: Session, course_id: str, user: Optional[User]) -> Course:
	course = db.get(Course, course_id)
	if not course or (not course.is_published and not can_manage(course, user)):
		raise NotFound("Course not found")
	return course


def _check_level(level: Optional[str]) -> None:
	if level is not None and level not in CEFR_LEVELS:
		raise ValidationError(f"level must be one of {list(CEFR_LEVELS)}")


@router.get("/")
def list_courses(
	category: Optional[str] = None,
	level: Optional[str] = None,
	limit: int = Query(50, ge=1, le=100),
	offset: int = Query(0, ge=0),
	db: Session = Depends(get_db),
):
	query = db.query(Course).filter(Course.is_published.is_(True))
	if category:
		query = query.filter(Course.category == category)
	if level:
		query = query.filter(Course.level == level)
	total = query.count()
	rows = query.order_by(Course.created_at.desc()).limit(limit).offset(offset).all()
	return {"count": total, "data": [course_view(c) for c in rows]}


@router.get("/{course_id}")
def get_course(course_id: str, user: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
	course = get_visible_course(db, course_id, user)
	return {**course_view(course), "lessons": [lesson_view(l) for l in course.lessons]}


@router.get("/{course_id}/lessons")
def get_course_lessons(course_id: str, user: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
	course = get_visible_course(db, course_id, user)
	return {"data": [lesson_view(l) for l in course.lessons]}


@router.post("/", status_code=201)
def create_course(
	req: CourseCreateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	_check_level(req.level)
	course = Course(teacher_id=user.id, **req.model_dump())
	db.add(course)
	db.commit()
	db.refresh(course)
	return course_view(course)


@router.put("/{course_id}")
def update_course(
	course_id: str,
	req: CourseUpdateRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	course = db.get(Course, course_id)
	if not course:
		raise NotFound("Course not found")
	if not can_manage(course, user):
		raise Forbidden("You can only edit your own courses")
	updates = req.model_dump(exclude_unset=True)
	_check_level(updates.get("level"))
	for field, value in updates.items():
		if value is None and field not in ("description", "category", "thumbnail_url"):
			continue
		setattr(course, field, value)
	db.commit()
	db.refresh(course)
	return course_view(course)


@router.delete("/{course_id}")
def delete_course(
	course_id: str,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	course = db.get(Course, course_id)
	if not course:
		raise NotFound("Course not found")
	if not can_manage(course, user):
		raise Forbidden("You can only delete your own courses")
	db.delete(course)
	db.commit()
	return {"ok": True}
