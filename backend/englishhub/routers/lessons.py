"""
Teacher lesson management: create a lesson with an optional PDF/audio/video
upload (stored in R2) and delete lessons together with their stored asset.
"""

from __future__ import annotations
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Forbidden, NotFound, ValidationError
from ..models import LESSON_CONTENT_TYPES, Course, Lesson
from ..settings import settings
from ..storage import R2Storage, get_content_type, get_storage
from .auth import User, require_roles
from .courses import lesson_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/teacher/lessons", tags=["lessons"])

ALLOWED_MIME_TYPES = (
	"application/pdf",
	"audio/mpeg",
	"audio/wav",
	"audio/ogg",
	"audio/mp3",
	"video/mp4",
)

_CONTENT_TYPE_BY_EXT = {
	".pdf": "pdf",
	".mp3": "audio",
	".wav": "audio",
	".ogg": "audio",
	".mp4": "video",
}


def content_type_for(filename: str) -> Optional[str]:
	return _CONTENT_TYPE_BY_EXT.get(os.path.splitext(filename or "")[1].lower())


def _owned_course(db: Session, course_id: str, user: User) -> Course:
	course = db.get(Course, course_id)
	if not course:
		raise NotFound("Course not found")
	if user.role == "teacher" and course.teacher_id != user.id:
		raise NotFound("Course not found or not owned by you")
	return course


@router.post("/upload", status_code=201)
async def create_lesson_with_file(
	course_id: str = Form(...),
	title: str = Form(...),
	description: Optional[str] = Form(None),
	content_type: Optional[str] = Form(None),
	content_url: Optional[str] = Form(None),
	duration_minutes: int = Form(0),
	order_index: Optional[int] = Form(None),
	is_free: bool = Form(False),
	file: Optional[UploadFile] = File(None),
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
	storage: R2Storage = Depends(get_storage),
):
	if not title.strip():
		raise ValidationError("title is required")
	if content_type is not None and content_type not in LESSON_CONTENT_TYPES:
		raise ValidationError(f"content_type must be one of {list(LESSON_CONTENT_TYPES)}")
	course = _owned_course(db, course_id, user)

	final_content_type = content_type or "video"
	storage_key = None
	if file is not None and file.filename:
		if file.content_type not in ALLOWED_MIME_TYPES:
			raise ValidationError("File type not allowed. Allowed: PDF, MP3, WAV, OGG, MP4")
		if file.size is not None and file.size > settings.max_upload_bytes:
			raise HTTPException(status_code=413, detail="file too large")
		# Read one byte past the limit so an unknown size is still bounded
		data = await file.read(settings.max_upload_bytes + 1)
		if len(data) > settings.max_upload_bytes:
			raise HTTPException(status_code=413, detail="file too large")
		stored = storage.upload_file(data, file.filename, f"lessons/{course.id}", get_content_type(file.filename))
		content_url = stored.url
		storage_key = stored.key
		final_content_type = content_type_for(file.filename) or final_content_type

	if order_index is None:
		max_order = db.query(func.max(Lesson.order_index)).filter(Lesson.course_id == course.id).scalar()
		order_index = (max_order or 0) + 1

	lesson = Lesson(
		course_id=course.id,
		title=title.strip(),
		description=description,
		content_type=final_content_type,
		content_url=content_url,
		storage_key=storage_key,
		duration_minutes=max(0, duration_minutes),
		order_index=order_index,
		is_free=is_free,
	)
	db.add(lesson)
	course.total_lessons = (course.total_lessons or 0) + 1
	db.commit()
	db.refresh(lesson)
	logger.info("lesson %s created in course %s (asset=%s)", lesson.id, course.id, storage_key)
	return lesson_view(lesson)


@router.delete("/{lesson_id}")
def delete_lesson(
	lesson_id: str,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
	storage: R2Storage = Depends(get_storage),
):
	lesson = db.get(Lesson, lesson_id)
	if not lesson:
		raise NotFound("Lesson not found")
	course = lesson.course
	if user.role == "teacher" and (course is None or course.teacher_id != user.id):
		raise Forbidden("You can only delete lessons of your own courses")
	if lesson.storage_key:
		storage.delete_file(lesson.storage_key)
	db.delete(lesson)
	if course is not None:
		course.total_lessons = max(0, (course.total_lessons or 0) - 1)
	db.commit()
	return {"ok": True}
