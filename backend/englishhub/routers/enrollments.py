"""
Course enrollment.

Enrolling is instant: there is no cart or payment step, so each enrollment
also records a completed order carrying the course price at that moment.
"""

from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationError
from ..models import Course, Enrollment, Order, OrderItem
from .auth import User, get_current_user
from .courses import course_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


class EnrollRequest(BaseModel):
	course_id: Optional[str] = None


def enrollment_view(enrollment: Enrollment) -> dict:
	return {
		"id": enrollment.id,
		"learner_id": enrollment.learner_id,
		"course_id": enrollment.course_id,
		"status": enrollment.status,
		"enrolled_at": enrollment.enrolled_at.isoformat() if enrollment.enrolled_at else None,
	}


def find_enrollment(db: Session, learner_id: str, course_id: str) -> Optional[Enrollment]:
	return (
		db.query(Enrollment)
		.filter(Enrollment.learner_id == learner_id, Enrollment.course_id == course_id)
		.first()
	)


def enroll(db: Session, user: User, course_id: str) -> Enrollment:
	course = db.get(Course, course_id)
	if not course or not course.is_published:
		raise NotFound("Course not found")
	if find_enrollment(db, user.id, course.id):
		raise HTTPException(status_code=409, detail="Already enrolled in this course")

	enrollment = Enrollment(learner_id=user.id, course_id=course.id, status="active")
	price = course.price or 0
	order = Order(account_id=user.id, total_amount=price, status="completed", payment_method="instant")
	order.items.append(OrderItem(course_id=course.id, title=course.title, price=price))
	db.add_all([enrollment, order])
	try:
		db.commit()
	except IntegrityError:
		# A concurrent request enrolled first
		db.rollback()
		raise HTTPException(status_code=409, detail="Already enrolled in this course")
	db.refresh(enrollment)
	logger.info("account %s enrolled in course %s (order %s, %s)", user.id, course.id, order.id, price)
	return enrollment


@router.post("/enroll/{course_id}", status_code=201)
def enroll_in_course(course_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return enrollment_view(enroll(db, user, course_id))


@router.post("/", status_code=201)
def create_enrollment(req: EnrollRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	if not req.course_id:
		raise ValidationError("course_id is required")
	return enrollment_view(enroll(db, user, req.course_id))


@router.get("/check/{course_id}")
def check_enrollment(course_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	if not db.get(Course, course_id):
		raise NotFound("Course not found")
	enrollment = find_enrollment(db, user.id, course_id)
	return {
		"course_id": course_id,
		"is_enrolled": enrollment is not None,
		"status": enrollment.status if enrollment else None,
	}


@router.get("/my-courses")
def my_courses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(Enrollment)
		.filter(Enrollment.learner_id == user.id)
		.order_by(Enrollment.enrolled_at.desc())
		.all()
	)
	return {"data": [{**enrollment_view(e), "course": course_view(e.course)} for e in rows]}
