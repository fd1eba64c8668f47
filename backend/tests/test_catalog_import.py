import json
from datetime import datetime, timezone

from englishhub.catalog_import import group_manifest, humanize, import_manifest, main, slugify
from englishhub.manifest import build_manifest
from englishhub.models import Account, Course, Lesson

WHEN = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _manifest(keys):
	return build_manifest([{"Key": k, "Size": 1, "LastModified": WHEN} for k in keys], "https://pub.r2.dev")


MANIFEST_KEYS = [
	"courses/toeic/ms-hoa/toeic-650/part-2/listening.mp3",
	"courses/toeic/ms-hoa/toeic-650/part-1/photos.pdf",
	"courses/toeic/ms-hoa/toeic-900/intro.mp4",
	"courses/ielts/mr-long/ielts-writing/task-1.pdf",
]


def test_helpers():
	assert humanize("toeic-650_reading") == "toeic 650 reading"
	assert slugify("Ms Hoa!") == "ms-hoa"
	assert slugify("!!!") == "teacher"


def test_group_manifest_groups_by_course():
	groups = group_manifest(_manifest(MANIFEST_KEYS))
	assert list(groups) == [
		("ielts", "mr-long", "ielts-writing"),
		("toeic", "ms-hoa", "toeic-650"),
		("toeic", "ms-hoa", "toeic-900"),
	]
	assert [i["section"] for i in groups[("toeic", "ms-hoa", "toeic-650")]] == ["part-1", "part-2"]


def test_import_creates_teachers_courses_and_lessons(db_session):
	stats = import_manifest(db_session, _manifest(MANIFEST_KEYS))
	assert stats == {"teachers": 2, "courses": 3, "lessons": 4, "skipped_lessons": 0}

	teacher = db_session.query(Account).filter(Account.email == "ms-hoa@teachers.englishhub.local").one()
	assert teacher.role == "teacher"
	course = db_session.query(Course).filter(Course.title == "toeic 650").one()
	assert course.teacher_id == teacher.id
	assert course.is_published is True
	assert course.level == "B1"
	assert course.total_lessons == 2
	lessons = course.lessons
	assert [(l.title, l.order_index, l.is_free, l.content_type) for l in lessons] == [
		("photos", 1, True, "pdf"),
		("listening", 2, False, "audio"),
	]
	assert lessons[0].description == "part 1"
	assert all(l.storage_key is None for l in lessons)


def test_import_twice_is_idempotent(db_session):
	import_manifest(db_session, _manifest(MANIFEST_KEYS))
	stats = import_manifest(db_session, _manifest(MANIFEST_KEYS))
	assert stats == {"teachers": 0, "courses": 0, "lessons": 0, "skipped_lessons": 4}
	assert db_session.query(Lesson).count() == 4


def test_import_appends_new_files(db_session):
	import_manifest(db_session, _manifest(MANIFEST_KEYS))
	stats = import_manifest(db_session, _manifest(MANIFEST_KEYS + ["courses/toeic/ms-hoa/toeic-900/unit-2.pdf"]))
	assert stats["lessons"] == 1
	course = db_session.query(Course).filter(Course.title == "toeic 900").one()
	assert [l.order_index for l in course.lessons] == [1, 2]
	assert course.total_lessons == 2


def test_main_fails_without_manifest(tmp_path):
	assert main(["--manifest", str(tmp_path / "missing.json")]) == 1


def test_main_imports_file(tmp_path, monkeypatch, session_factory):
	path = tmp_path / "_manifest.json"
	path.write_text(json.dumps(_manifest(MANIFEST_KEYS)), encoding="utf-8")
	monkeypatch.setattr("englishhub.catalog_import.SessionLocal", session_factory)
	monkeypatch.setattr("englishhub.catalog_import.init_db", lambda: None)
	assert main(["--manifest", str(path)]) == 0
	db = session_factory()
	try:
		assert db.query(Course).count() == 3
	finally:
		db.close()
