from englishhub.models import Course, Enrollment, Order


def _published_course(client, headers, price=199000, **overrides):
	body = {"title": "TOEIC 650+", "category": "toeic", "price": price, "is_published": True, **overrides}
	resp = client.post("/courses/", json=body, headers=headers)
	assert resp.status_code == 201, resp.text
	return resp.json()


def test_enroll_creates_enrollment_and_completed_order(client, db_session, teacher, learner):
	course = _published_course(client, teacher[1])
	resp = client.post(f"/enrollments/enroll/{course['id']}", headers=learner[1])
	assert resp.status_code == 201, resp.text
	body = resp.json()
	assert body["status"] == "active"
	assert body["course_id"] == course["id"]
	assert body["learner_id"] == learner[0].id

	order = db_session.query(Order).filter(Order.account_id == learner[0].id).one()
	assert order.status == "completed"
	assert float(order.total_amount) == 199000.0
	assert [(i.course_id, float(i.price)) for i in order.items] == [(course["id"], 199000.0)]


def test_duplicate_enrollment_is_conflict(client, db_session, teacher, learner):
	course = _published_course(client, teacher[1])
	assert client.post(f"/enrollments/enroll/{course['id']}", headers=learner[1]).status_code == 201
	again = client.post(f"/enrollments/enroll/{course['id']}", headers=learner[1])
	assert again.status_code == 409
	assert again.json()["detail"] == "Already enrolled in this course"
	assert db_session.query(Enrollment).count() == 1
	assert db_session.query(Order).count() == 1


def test_enroll_via_body(client, teacher, learner):
	course = _published_course(client, teacher[1])
	assert client.post("/enrollments/", json={"course_id": course["id"]}, headers=learner[1]).status_code == 201
	assert client.post("/enrollments/", json={}, headers=learner[1]).status_code == 400


def test_cannot_enroll_in_missing_or_unpublished_course(client, teacher, learner):
	draft = _published_course(client, teacher[1], title="Draft", is_published=False)
	assert client.post(f"/enrollments/enroll/{draft['id']}", headers=learner[1]).status_code == 404
	assert client.post("/enrollments/enroll/nope", headers=learner[1]).status_code == 404


def test_enroll_requires_login(client, teacher):
	course = _published_course(client, teacher[1])
	assert client.post(f"/enrollments/enroll/{course['id']}").status_code == 401


def test_check_enrollment(client, teacher, learner):
	course = _published_course(client, teacher[1])
	before = client.get(f"/enrollments/check/{course['id']}", headers=learner[1]).json()
	assert before["is_enrolled"] is False
	assert before["status"] is None
	client.post(f"/enrollments/enroll/{course['id']}", headers=learner[1])
	after = client.get(f"/enrollments/check/{course['id']}", headers=learner[1]).json()
	assert after["is_enrolled"] is True
	assert after["status"] == "active"
	assert client.get("/enrollments/check/nope", headers=learner[1]).status_code == 404


def test_my_courses_lists_only_own_enrollments(client, teacher, learner, make_user):
	first = _published_course(client, teacher[1])
	second = _published_course(client, teacher[1], title="IELTS 6.5", price=0)
	client.post(f"/enrollments/enroll/{first['id']}", headers=learner[1])
	client.post(f"/enrollments/enroll/{second['id']}", headers=learner[1])
	_, other = make_user("learner")
	assert client.get("/enrollments/my-courses", headers=other).json()["data"] == []
	mine = client.get("/enrollments/my-courses", headers=learner[1]).json()["data"]
	assert sorted(e["course"]["title"] for e in mine) == ["IELTS 6.5", "TOEIC 650+"]


def test_deleting_course_removes_enrollments(client, db_session, teacher, learner):
	course = _published_course(client, teacher[1])
	client.post(f"/enrollments/enroll/{course['id']}", headers=learner[1])
	assert client.delete(f"/courses/{course['id']}", headers=teacher[1]).status_code == 200
	db_session.expire_all()
	assert db_session.get(Course, course["id"]) is None
	assert db_session.query(Enrollment).count() == 0
	# Revenue history stays
	assert db_session.query(Order).count() == 1
