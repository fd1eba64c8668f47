"""
Shared fixtures: an in-memory SQLite database per test, a TestClient wired
to it, account helpers, and an object-storage double.
"""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("R2_PUBLIC_URL", "https://cdn.example.com")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from englishhub import models  # noqa: F401
from englishhub.db import Base, get_db
from englishhub.main import app
from englishhub.models import Account, Exam, Question, Rubric
from englishhub.routers.auth import hash_password
from englishhub.storage import R2Storage, get_storage


class FakeS3Client:
	"""Records put/delete calls the way boto3's S3 client receives them."""

	def __init__(self):
		self.objects = {}
		self.deleted = []

	def put_object(self, Bucket, Key, Body, ContentType):
		self.objects[Key] = {"Bucket": Bucket, "Body": Body, "ContentType": ContentType}
		return {}

	def delete_object(self, Bucket, Key):
		self.deleted.append(Key)
		self.objects.pop(Key, None)
		return {}


@pytest.fixture
def engine():
	engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	Base.metadata.create_all(engine)
	yield engine
	engine.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
	db = session_factory()
	try:
		yield db
	finally:
		db.close()


@pytest.fixture
def fake_s3():
	return FakeS3Client()


@pytest.fixture
def storage(fake_s3):
	return R2Storage(fake_s3, bucket="test-bucket", public_url="https://cdn.example.com")


@pytest.fixture
def client(session_factory, storage):
	def override_get_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_storage] = lambda: storage
	yield TestClient(app)
	app.dependency_overrides.clear()


def create_account(db, email, role, password="secret123", full_name=None):
	account = Account(email=email, password_hash=hash_password(password), role=role, full_name=full_name)
	db.add(account)
	db.commit()
	db.refresh(account)
	return account


def login(client, email, password="secret123"):
	resp = client.post("/auth/token", data={"username": email, "password": password})
	assert resp.status_code == 200, resp.text
	return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def make_user(client, db_session):
	"""Create an account with the given role and return (account, auth headers)."""
	counter = {"n": 0}

	def _make(role="learner"):
		counter["n"] += 1
		email = f"{role}{counter['n']}@example.com"
		account = create_account(db_session, email, role)
		return account, login(client, email)

	return _make


@pytest.fixture
def teacher(make_user):
	return make_user("teacher")


@pytest.fixture
def learner(make_user):
	return make_user("learner")


@pytest.fixture
def admin(make_user):
	return make_user("admin")


def add_question(db, creator_id, qtype="multiple_choice", correct_answer="A", rubric_id=None, **kwargs):
	question = Question(
		creator_id=creator_id,
		skill=kwargs.pop("skill", "grammar"),
		type=qtype,
		content_text=kwargs.pop("content_text", "Choose the right option"),
		options=kwargs.pop("options", ["A", "B", "C", "D"]),
		correct_answer=correct_answer,
		rubric_id=rubric_id,
		**kwargs,
	)
	db.add(question)
	db.commit()
	db.refresh(question)
	return question


def add_rubric(db, name="Writing band"):
	rubric = Rubric(name=name, criteria=[{"name": "task response", "weight": 1.0, "description": None}])
	db.add(rubric)
	db.commit()
	db.refresh(rubric)
	return rubric


def add_exam(db, creator_id, questions, status="published", grading_method="auto", pass_score=60):
	exam = Exam(
		creator_id=creator_id,
		title="Grammar check",
		list_question_ids=[q.id for q in questions],
		status=status,
		grading_method=grading_method,
		pass_score=pass_score,
	)
	db.add(exam)
	db.commit()
	db.refresh(exam)
	return exam
