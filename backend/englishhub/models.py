from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import (
	JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


ROLES = ("admin", "teacher", "learner")
CEFR_LEVELS = ("A1", "A2", "B1", "B2", "C1", "C2")
SKILLS = ("listening", "speaking", "reading", "writing", "grammar", "vocabulary")
QUESTION_TYPES = ("multiple_choice", "fill_in_blank", "essay", "recording", "matching")
AUTO_GRADABLE_TYPES = ("multiple_choice", "fill_in_blank", "matching")
MANUAL_TYPES = ("essay", "recording")
GRADING_METHODS = ("auto", "manual", "hybrid")
EXAM_STATUSES = ("draft", "published", "archived")
APPROVAL_STATUSES = ("draft", "pending_review", "approved", "rejected")
LESSON_CONTENT_TYPES = ("video", "pdf", "audio", "quiz", "link")
ENROLLMENT_STATUSES = ("active", "completed", "cancelled")
ORDER_STATUSES = ("pending", "completed", "cancelled")


def _uuid() -> str:
	return str(uuid.uuid4())


class Account(Base):
	__tablename__ = "accounts"
	id = Column(String(36), primary_key=True, default=_uuid)
	email = Column(String(150), unique=True, index=True, nullable=False)
	password_hash = Column(String(255), nullable=False)
	role = Column(Enum(*ROLES, name="account_role"), nullable=False, default="learner")
	full_name = Column(String(255), nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT "jti" claim; a token is only valid while its row exists
	session_id = Column(String(64), primary_key=True)
	account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Course(Base):
	__tablename__ = "courses"
	id = Column(String(36), primary_key=True, default=_uuid)
	teacher_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=True)
	title = Column(String(255), nullable=False)
	description = Column(Text, nullable=True)
	category = Column(String(100), nullable=True)
	level = Column(Enum(*CEFR_LEVELS, name="course_level"), default="B1", nullable=False)
	price = Column(Numeric(12, 2), default=0, nullable=False)
	thumbnail_url = Column(String(2048), nullable=True)
	is_published = Column(Boolean, default=False, nullable=False)
	total_lessons = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	teacher = relationship("Account")
	lessons = relationship("Lesson", back_populates="course", order_by="Lesson.order_index", cascade="all, delete-orphan")
	enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")


class Lesson(Base):
	__tablename__ = "lessons"
	id = Column(String(36), primary_key=True, default=_uuid)
	course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False)
	title = Column(String(255), nullable=False)
	description = Column(Text, nullable=True)
	content_type = Column(Enum(*LESSON_CONTENT_TYPES, name="lesson_content_type"), default="video", nullable=False)
	content_url = Column(String(2048), nullable=True)
	# Object key in the bucket when the asset was uploaded through the API
	storage_key = Column(String(1024), nullable=True)
	duration_minutes = Column(Integer, default=0, nullable=False)
	order_index = Column(Integer, default=0, nullable=False)
	is_free = Column(Boolean, default=False, nullable=False)

	course = relationship("Course", back_populates="lessons")


class Enrollment(Base):
	__tablename__ = "enrollments"
	id = Column(String(36), primary_key=True, default=_uuid)
	learner_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False)
	course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False)
	status = Column(Enum(*ENROLLMENT_STATUSES, name="enrollment_status"), default="active", nullable=False)
	enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	learner = relationship("Account")
	course = relationship("Course", back_populates="enrollments")

	__table_args__ = (UniqueConstraint("learner_id", "course_id", name="uq_enrollment_learner_course"),)


class Order(Base):
	__tablename__ = "orders"
	id = Column(String(36), primary_key=True, default=_uuid)
	account_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
	total_amount = Column(Numeric(12, 2), default=0, nullable=False)
	status = Column(Enum(*ORDER_STATUSES, name="order_status"), default="pending", nullable=False)
	payment_method = Column(String(50), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
	__tablename__ = "order_items"
	id = Column(String(36), primary_key=True, default=_uuid)
	order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
	# Kept when the course is removed so revenue history survives
	course_id = Column(String(36), nullable=True)
	title = Column(String(255), nullable=False)
	price = Column(Numeric(12, 2), default=0, nullable=False)

	order = relationship("Order", back_populates="items")


class Rubric(Base):
	__tablename__ = "rubrics"
	id = Column(String(36), primary_key=True, default=_uuid)
	name = Column(String(255), unique=True, nullable=False)
	# [{"name": ..., "weight": ..., "description": ...}]
	criteria = Column(JSON, nullable=True)


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(36), primary_key=True, default=_uuid)
	creator_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
	skill = Column(Enum(*SKILLS, name="question_skill"), nullable=False)
	type = Column(Enum(*QUESTION_TYPES, name="question_type"), nullable=False)
	level = Column(Enum(*CEFR_LEVELS, name="question_level"), default="B1", nullable=False)
	content_text = Column(Text, nullable=False)
	media_url = Column(String(2048), nullable=True)
	options = Column(JSON, nullable=True)
	correct_answer = Column(Text, nullable=True)
	explanation = Column(Text, nullable=True)
	rubric_id = Column(String(36), ForeignKey("rubrics.id", ondelete="SET NULL"), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	rubric = relationship("Rubric")


class Exam(Base):
	__tablename__ = "exams"
	id = Column(String(36), primary_key=True, default=_uuid)
	creator_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
	title = Column(String(255), nullable=False)
	description = Column(Text, nullable=True)
	duration_minutes = Column(Integer, default=60, nullable=False)
	pass_score = Column(Integer, default=60, nullable=False)
	grading_method = Column(Enum(*GRADING_METHODS, name="grading_method"), default="auto", nullable=False)
	# Display order; scoring does not depend on it
	list_question_ids = Column(JSON, default=list, nullable=False)
	status = Column(Enum(*EXAM_STATUSES, name="exam_status"), default="draft", nullable=False)
	approval_status = Column(Enum(*APPROVAL_STATUSES, name="exam_approval_status"), default="draft", nullable=False)
	rejection_reason = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	creator = relationship("Account")
	# Deleted through the ORM; SQLite does not enforce ON DELETE CASCADE by default
	submissions = relationship("ExamSubmission", back_populates="exam", cascade="all, delete-orphan")


class ExamSubmission(Base):
	__tablename__ = "exam_submissions"
	id = Column(String(36), primary_key=True, default=_uuid)
	exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), index=True, nullable=False)
	learner_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
	attempt = Column(Integer, default=1, nullable=False)
	submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	time_spent_seconds = Column(Integer, default=0, nullable=False)
	total_score = Column(Integer, default=0, nullable=False)
	awarded_points = Column(Integer, default=0, nullable=False)
	possible_points = Column(Integer, default=0, nullable=False)
	# NULL while manual review is outstanding
	passed = Column(Boolean, nullable=True)
	status = Column(Enum("grading", "completed", name="submission_status"), default="completed", nullable=False)

	exam = relationship("Exam", back_populates="submissions")
	answers = relationship("SubmissionAnswer", back_populates="submission", cascade="all, delete-orphan")

	__table_args__ = (UniqueConstraint("exam_id", "learner_id", "attempt", name="uq_submission_attempt"),)


class SubmissionAnswer(Base):
	__tablename__ = "submission_answers"
	id = Column(String(36), primary_key=True, default=_uuid)
	submission_id = Column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(String(36), nullable=False)
	answer = Column(JSON, nullable=True)
	is_correct = Column(Boolean, nullable=True)
	score = Column(Integer, default=0, nullable=False)
	review_status = Column(
		Enum("auto_graded", "pending_manual_review", name="answer_review_status"),
		default="auto_graded",
		nullable=False,
	)

	submission = relationship("ExamSubmission", back_populates="answers")
