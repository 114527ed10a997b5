import pytest
from fastapi.testclient import TestClient

from gradebook.core.auth import create_token
from gradebook.core.cache import get_redis
from gradebook.core.database import get_db
from gradebook.jobs.queue import get_queue
from gradebook.main import app


@pytest.fixture
def client(session_factory, fake_redis):
    def _db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_queue] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def _hdr(user, *roles):
    return {"Authorization": f"Bearer {create_token(user, list(roles))}"}


STAFF = _hdr("prof", "instructor")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200 and r.json()["status"] == "ok"


def test_mock_login(client):
    r = client.post("/v1/auth/mock-login", json={"user_id": "tester", "roles": ["student"]})
    assert r.status_code == 200
    token = r.json()["access_token"]
    assert client.get("/v1/assignments/1/questions", headers={"Authorization": f"Bearer {token}"}).status_code == 403


def test_requires_token(client, seeded):
    assert client.get(f"/v1/assignments/{seeded.id}/results").status_code in (401, 403)
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get(f"/v1/assignments/{seeded.id}/results", headers=bad).status_code == 401


def test_redistribute_submit_and_results(client, seeded):
    r = client.post(
        f"/v1/assignments/{seeded.id}/points/redistribute", headers=STAFF,
        json={"PointsByType": {"MultipleChoice": 6, "TrueFalse": 3, "ShortAnswer": 1}, "ExpectedVersion": 0},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] and body["points_version"] == 1
    assert body["weights"][str(seeded.mc[0])] == 2.0

    r = client.get(f"/v1/assignments/{seeded.id}/questions", headers=STAFF)
    assert r.json()["total_points"] == pytest.approx(10.0)
    assert [q["type_name"] for q in r.json()["questions"]][0] == "MULTIPLE_CHOICE"

    student = _hdr("alice", "student")
    r = client.post(f"/v1/assignments/{seeded.id}/attempts", headers=student)
    assert r.status_code == 201
    attempt_id = r.json()["id"]

    o = seeded.options
    q4, q5 = seeded.tf
    r = client.put(f"/v1/attempts/{attempt_id}/answers", headers=student, json={"Answers": [
        {"QuestionId": seeded.mc[0], "OptionId": o["q1_right"]},
        {"questionId": seeded.mc[1], "optionId": o["q2_wrong"]},
        {"question_id": seeded.mc[2], "option_id": o["q3_right"]},
    ]})
    assert r.status_code == 200, r.text

    # someone else's attempt
    assert client.post(f"/v1/attempts/{attempt_id}/submit", headers=_hdr("bob", "student")).status_code == 403

    r = client.post(f"/v1/attempts/{attempt_id}/submit", headers=student, json={"Answers": [
        {"QuestionId": q4, "OptionId": o["q4_a"], "AnswerText": "true"},
        {"QuestionId": q4, "OptionId": o["q4_b"], "AnswerText": "false"},
        {"QuestionId": q5, "OptionId": o["q5_a"], "AnswerText": "true"},
        {"QuestionId": q5, "OptionId": o["q5_b"], "AnswerText": "false"},
        {"QuestionId": seeded.sa, "AnswerText": " paris"},
    ]})
    assert r.status_code == 200, r.text
    grade = r.json()
    assert grade["score"] == pytest.approx(7.25)
    assert grade["percentage"] == pytest.approx(72.5)
    assert grade["per_question_breakdown"][str(q5)] == pytest.approx(0.75)

    assert client.post(f"/v1/attempts/{attempt_id}/grade", headers=student).status_code == 403
    r = client.post(f"/v1/attempts/{attempt_id}/grade", headers=STAFF)
    assert r.json()["score"] == pytest.approx(7.25)

    r = client.get(f"/v1/assignments/{seeded.id}/results", headers=STAFF)
    assert r.status_code == 200
    assert r.json()["best_score"] == pytest.approx(7.25) and r.json()["pass_rate"] == 1.0

    r = client.get(f"/v1/assignments/{seeded.id}/analytics", headers=STAFF)
    assert r.json()["score_distribution"]["Good"] == 1


def test_rejected_budget_returns_every_error(client, seeded):
    r = client.post(f"/v1/assignments/{seeded.id}/points/redistribute", headers=STAFF,
                    json={"pointsByType": {"0": 6, "3": 1, "essay": 2}})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert len(body["errors"]) >= 2
    assert body["error"]["type"] == "validation_error"


def test_stale_version_is_409(client, seeded):
    url = f"/v1/assignments/{seeded.id}/points/redistribute"
    assert client.post(url, headers=STAFF, json={"PointsByType": {"0": 6, "1": 3, "2": 1}}).status_code == 200
    r = client.post(url, headers=STAFF, json={"PointsByType": {"0": 6, "1": 3, "2": 1}, "ExpectedVersion": 0})
    assert r.status_code == 409
    assert r.json()["error"]["type"] == "conflict"


def test_unknown_assignment_is_404(client):
    r = client.get("/v1/assignments/404/results", headers=STAFF)
    assert r.status_code == 404


def test_invalid_answer_is_422(client, seeded):
    student = _hdr("alice", "student")
    attempt_id = client.post(f"/v1/assignments/{seeded.id}/attempts", headers=student).json()["id"]
    r = client.put(f"/v1/attempts/{attempt_id}/answers", headers=student,
                   json={"Answers": [{"QuestionId": seeded.mc[0], "OptionId": seeded.options["q2_right"]}]})
    assert r.status_code == 422
    assert "does not belong" in r.json()["errors"][0]


def test_regrade_run_lookup(client, seeded):
    assert client.get("/v1/admin/regrade-runs/missing", headers=STAFF).status_code == 404


def test_mock_login_rejects_unknown_roles(client):
    r = client.post("/v1/auth/mock-login", json={"user_id": "tester", "roles": ["superuser"]})
    assert r.status_code == 422
