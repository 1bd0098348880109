from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from quiz_runner.core.attempt_manager import AttemptManager
from quiz_runner.core.models import Question, QuestionType
from quiz_runner.server.api_server import create_api_app
from tests.fakes import make_quiz

ALICE = {"x-learner-id": "alice"}
BOB = {"x-learner-id": "bob"}
GRADER = {"x-learner-id": "grader"}


@pytest.fixture()
def client():
    manager = AttemptManager()
    manager.load_quiz(make_quiz())
    manager.load_quiz(
        make_quiz(
            quiz_id="essay",
            questions=[Question(id="e1", type=QuestionType.ESSAY, prompt="Discuss", points=2)],
        )
    )
    return TestClient(create_api_app(manager))


def _start(client: TestClient, quiz_id: str = "quiz-1", headers=ALICE) -> dict:
    response = client.post(f"/quizzes/{quiz_id}/attempts", headers=headers)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_quiz_listing_and_definition(client):
    listing = client.get("/quizzes").json()
    assert {item["id"] for item in listing} == {"quiz-1", "essay"}

    quiz = client.get("/quizzes/quiz-1").json()
    assert quiz["title"] == "Sample quiz"
    assert [q["id"] for q in quiz["questions"]] == ["q1", "q2"]
    assert quiz["questions"][0]["type"] == "single_select"


def test_unknown_quiz_is_404(client):
    assert client.get("/quizzes/missing").status_code == 404
    assert client.post("/quizzes/missing/attempts", headers=ALICE).status_code == 404


def test_learner_header_is_required(client):
    response = client.post("/quizzes/quiz-1/attempts")

    assert response.status_code == 401


def test_start_then_limit_reached(client):
    attempt = _start(client)
    assert attempt["attempt_number"] == 1
    assert attempt["status"] == "active"
    assert attempt["learner_id"] == "alice"

    refused = client.post("/quizzes/quiz-1/attempts", headers=ALICE)

    assert refused.status_code == 409
    assert refused.json()["detail"]["code"] == "max_attempts_reached"

    eligibility = client.get("/quizzes/quiz-1/eligibility", headers=ALICE).json()
    assert eligibility == {"can_take": False, "reason": "no attempts remaining", "attempts_remaining": 0, "max_attempts": 1}


def test_inactive_quiz_start_is_409_unavailable():
    manager = AttemptManager()
    manager.load_quiz(make_quiz(is_active=False))
    client = TestClient(create_api_app(manager))

    response = client.post("/quizzes/quiz-1/attempts", headers=ALICE)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "quiz_unavailable"


def test_submit_and_resubmit_return_same_summary(client):
    attempt = _start(client)
    payload = {
        "answers": [
            {"question_id": "q1", "value": "A", "time_spent_seconds": 4},
            {"question_id": "q2", "value": "A"},
        ]
    }

    first = client.post(f"/attempts/{attempt['id']}/submit", json=payload, headers=ALICE)
    second = client.post(f"/attempts/{attempt['id']}/submit", json={"answers": []}, headers=ALICE)

    assert first.status_code == 200
    body = first.json()
    assert body["score"] == 1
    assert body["total_possible"] == 2
    assert body["percentage"] == 50.0
    assert body["passed"] is True
    assert second.json() == body

    stored = client.get(f"/attempts/{attempt['id']}", headers=ALICE).json()
    assert stored["status"] == "completed"
    assert [a["is_correct"] for a in stored["answers"]] == [True, False]


def test_attempts_are_private(client):
    attempt = _start(client)

    assert client.get(f"/attempts/{attempt['id']}", headers=BOB).status_code == 403
    assert client.post(f"/attempts/{attempt['id']}/submit", json={"answers": []}, headers=BOB).status_code == 403
    assert client.get("/quizzes/quiz-1/attempts", headers=BOB).json() == []
    assert len(client.get("/quizzes/quiz-1/attempts", headers=ALICE).json()) == 1


def test_unknown_attempt_is_404(client):
    assert client.get("/attempts/nope", headers=ALICE).status_code == 404


@pytest.mark.parametrize(
    "answers",
    [
        [{"question_id": "q1", "value": "Z"}],
        [{"question_id": "nope", "value": "A"}],
        [{"question_id": "q1", "value": ["A"]}],
    ],
)
def test_invalid_answers_are_422(client, answers):
    attempt = _start(client)

    response = client.post(f"/attempts/{attempt['id']}/submit", json={"answers": answers}, headers=ALICE)

    assert response.status_code == 422


def test_negative_time_is_rejected_by_schema(client):
    attempt = _start(client)
    payload = {"answers": [{"question_id": "q1", "value": "A", "time_spent_seconds": -3}]}

    response = client.post(f"/attempts/{attempt['id']}/submit", json=payload, headers=ALICE)

    assert response.status_code == 422


def test_essay_review_flow(client):
    attempt = _start(client, "essay")
    submitted = client.post(
        f"/attempts/{attempt['id']}/submit",
        json={"answers": [{"question_id": "e1", "value": "Long answer"}]},
        headers=ALICE,
    ).json()
    assert submitted["needs_review"] is True
    assert submitted["score"] == 0

    reviewed = client.post(f"/attempts/{attempt['id']}/review", json={"question_id": "e1", "points": 2}, headers=GRADER)

    assert reviewed.status_code == 200
    assert reviewed.json()["score"] == 2
    assert reviewed.json()["needs_review"] is False
    too_many = client.post(f"/attempts/{attempt['id']}/review", json={"question_id": "e1", "points": 9}, headers=GRADER)
    assert too_many.status_code == 422


def test_review_before_submit_is_409(client):
    attempt = _start(client, "essay")

    response = client.post(f"/attempts/{attempt['id']}/review", json={"question_id": "e1", "points": 1}, headers=GRADER)

    assert response.status_code == 409


def test_statistics(client):
    attempt = _start(client)
    client.post(
        f"/attempts/{attempt['id']}/submit",
        json={"answers": [{"question_id": "q1", "value": "A"}, {"question_id": "q2", "value": "B"}]},
        headers=ALICE,
    )

    stats = client.get("/quizzes/quiz-1/statistics").json()

    assert stats["total_attempts"] == 1
    assert stats["passed_count"] == 1
    assert stats["average_percentage"] == 100.0


def test_review_requires_a_grader_other_than_the_learner(client):
    attempt = _start(client, "essay")
    client.post(
        f"/attempts/{attempt['id']}/submit",
        json={"answers": [{"question_id": "e1", "value": "Long answer"}]},
        headers=ALICE,
    )
    payload = {"question_id": "e1", "points": 2}

    anonymous = client.post(f"/attempts/{attempt['id']}/review", json=payload)
    own = client.post(f"/attempts/{attempt['id']}/review", json=payload, headers=ALICE)

    assert anonymous.status_code == 401
    assert own.status_code == 403
    assert client.get(f"/attempts/{attempt['id']}", headers=ALICE).json()["score"] == 0
