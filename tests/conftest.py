"""
Shared fixtures: an in-memory SQLite store per test, sample exams,
callers, and an API client wired to the same store.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "exam-preview-test-signing-secret-0001")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import issue_token
from app.database import build_engine, create_tables
from app.schemas import Caller
from app.services.exam_store import ExamPreviewStore
from app.services.preview import FinalizationPolicy, PreviewService

AUTHOR = Caller(id="teacher-1", role="teacher")
OTHER_TEACHER = Caller(id="teacher-2", role="teacher")
ADMIN = Caller(id="admin-1", role="admin")


def make_question(qid, points="1", negative_mark="0", partial_credit=False, with_marking=True):
    """Question dict in the stored document shape."""
    question = {
        "id": qid,
        "text": "Question {}".format(qid),
        "options": [
            {"letter": "A", "text": "first", "isCorrect": True},
            {"letter": "B", "text": "second", "isCorrect": False},
            {"letter": "C", "text": "third", "isCorrect": False},
            {"letter": "D", "text": "fourth", "isCorrect": False},
        ],
    }
    if with_marking:
        question["marking"] = {
            "points": points,
            "negativeMark": negative_mark,
            "partialCredit": partial_credit,
        }
    return question


@pytest.fixture
def engine():
    eng = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return ExamPreviewStore(session_factory)


@pytest.fixture
def service(store):
    return PreviewService(store, policy=FinalizationPolicy(require_preview_complete=False))


@pytest.fixture
def strict_service(store):
    return PreviewService(store, policy=FinalizationPolicy(require_preview_complete=True))


@pytest.fixture
def exam(store):
    """Three questions: points [1, 1, 2], negative marks [0, 0.25, 0]."""
    return store.create(
        title="Algebra Basics",
        description="Unit test",
        questions=[
            make_question("q1", points="1", negative_mark="0"),
            make_question("q2", points="1", negative_mark="0.25"),
            make_question("q3", points="2", negative_mark="0"),
        ],
        created_by=AUTHOR.id,
    )


@pytest.fixture
def empty_exam(store):
    return store.create(title="Empty", questions=[], created_by=AUTHOR.id)


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.routes.exam_preview import get_store

    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(caller: Caller) -> dict:
    return {"Authorization": "Bearer {}".format(issue_token(caller))}
