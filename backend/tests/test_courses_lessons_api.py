from englishhub.models import Course, Lesson
from englishhub.settings import settings


def _course(client, headers, **overrides):
	body = {"title": "TOEIC 650+", "category": "toeic", "level": "B1", "is_published": True, **overrides}
	resp = client.post("/courses/", json=body, headers=headers)
	assert resp.status_code == 201, resp.text
	return resp.json()


def test_course_catalog_lists_only_published(client, teacher):
	_course(client, teacher[1])
	draft = _course(client, teacher[1], title="Draft", is_published=False)
	listing = client.get("/courses/").json()
	assert listing["count"] == 1
	assert client.get(f"/courses/{draft['id']}").status_code == 404
	assert client.get(f"/courses/{draft['id']}", headers=teacher[1]).status_code == 200


def test_course_filters_and_level_validation(client, teacher):
	_course(client, teacher[1])
	_course(client, teacher[1], title="IELTS 6.5", category="ielts", level="B2")
	assert client.get("/courses/", params={"category": "ielts"}).json()["count"] == 1
	assert client.get("/courses/", params={"level": "B1"}).json()["count"] == 1
	resp = client.post("/courses/", json={"title": "x", "level": "Z9"}, headers=teacher[1])
	assert resp.status_code == 400


def test_only_owner_can_update_course(client, teacher, make_user):
	course = _course(client, teacher[1])
	_, other = make_user("teacher")
	assert client.put(f"/courses/{course['id']}", json={"title": "Mine"}, headers=other).status_code == 403
	resp = client.put(f"/courses/{course['id']}", json={"price": 199000}, headers=teacher[1])
	assert resp.json()["price"] == 199000.0


def test_upload_lesson_stores_file_in_bucket(client, db_session, teacher, fake_s3):
	course = _course(client, teacher[1])
	resp = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Part 1 - Photographs", "is_free": "true"},
		files={"file": ("Part 1.pdf", b"%PDF-1.4 test", "application/pdf")},
		headers=teacher[1],
	)
	assert resp.status_code == 201, resp.text
	lesson = resp.json()
	assert lesson["content_type"] == "pdf"
	assert lesson["order_index"] == 1
	assert lesson["is_free"] is True

	[(key, stored)] = fake_s3.objects.items()
	assert key.startswith(f"lessons/{course['id']}/")
	assert key.endswith(".pdf")
	assert stored["Bucket"] == "test-bucket"
	assert stored["ContentType"] == "application/pdf"
	assert stored["Body"] == b"%PDF-1.4 test"
	assert lesson["content_url"] == f"https://cdn.example.com/{key}"

	db_session.expire_all()
	assert db_session.get(Course, course["id"]).total_lessons == 1
	assert db_session.get(Lesson, lesson["id"]).storage_key == key


def test_lessons_are_appended_in_order(client, teacher):
	course = _course(client, teacher[1])
	for title in ("Intro", "Listening tips"):
		client.post(
			"/teacher/lessons/upload",
			data={"course_id": course["id"], "title": title, "content_type": "link", "content_url": "https://example.com"},
			headers=teacher[1],
		)
	lessons = client.get(f"/courses/{course['id']}/lessons").json()["data"]
	assert [(l["title"], l["order_index"]) for l in lessons] == [("Intro", 1), ("Listening tips", 2)]


def test_upload_rejects_disallowed_file_type(client, teacher, fake_s3):
	course = _course(client, teacher[1])
	resp = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Slides"},
		files={"file": ("deck.exe", b"MZ", "application/x-msdownload")},
		headers=teacher[1],
	)
	assert resp.status_code == 400
	assert fake_s3.objects == {}


def test_upload_to_someone_elses_course_is_not_found(client, teacher, make_user, fake_s3):
	course = _course(client, teacher[1])
	_, other = make_user("teacher")
	resp = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Hijack"},
		files={"file": ("a.mp3", b"ID3", "audio/mpeg")},
		headers=other,
	)
	assert resp.status_code == 404
	assert fake_s3.objects == {}


def test_learner_cannot_upload(client, learner):
	resp = client.post("/teacher/lessons/upload", data={"course_id": "x", "title": "t"}, headers=learner[1])
	assert resp.status_code == 403


def test_delete_lesson_removes_stored_asset(client, db_session, teacher, fake_s3):
	course = _course(client, teacher[1])
	lesson = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Audio"},
		files={"file": ("track.mp3", b"ID3", "audio/mpeg")},
		headers=teacher[1],
	).json()
	[key] = list(fake_s3.objects)
	assert client.delete(f"/teacher/lessons/{lesson['id']}", headers=teacher[1]).status_code == 200
	assert fake_s3.deleted == [key]
	db_session.expire_all()
	assert db_session.get(Lesson, lesson["id"]) is None
	assert db_session.get(Course, course["id"]).total_lessons == 0


def test_other_teacher_cannot_delete_lesson(client, teacher, make_user, fake_s3):
	course = _course(client, teacher[1])
	lesson = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Video"},
		files={"file": ("clip.mp4", b"\x00\x00", "video/mp4")},
		headers=teacher[1],
	).json()
	_, other = make_user("teacher")
	assert client.delete(f"/teacher/lessons/{lesson['id']}", headers=other).status_code == 403
	assert fake_s3.deleted == []


def test_upload_over_size_limit_is_rejected(client, teacher, fake_s3, monkeypatch):
	monkeypatch.setattr(settings, "max_upload_bytes", 4)
	course = _course(client, teacher[1])
	resp = client.post(
		"/teacher/lessons/upload",
		data={"course_id": course["id"], "title": "Big"},
		files={"file": ("big.pdf", b"%PDF-1.4 0123456789", "application/pdf")},
		headers=teacher[1],
	)
	assert resp.status_code == 413
	assert fake_s3.objects == {}
