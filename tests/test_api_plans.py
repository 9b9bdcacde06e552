"""
Plan API tests:
  - plan CRUD over HTTP
  - questionnaire answers and progress
  - transitions and section edits
  - acting-user header and error body shape
"""

import pytest

H = {"X-User-Id": "owner-1"}


def _create(client, **overrides):
    body = {
        "title": "Corner Bakery",
        "category": "LeanCanvas",
        "questions": [{"key": "q1", "text": "What do you sell?"}, {"key": "q2", "text": "To whom?"}],
    }
    body.update(overrides)
    res = client.post("/api/v1/plans", json=body, headers=H)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _answer_all(client, plan_id):
    for key in ("q1", "q2"):
        res = client.post(f"/api/v1/plans/{plan_id}/answers",
                          json={"question_key": key, "answer": f"answer {key}"}, headers=H)
        assert res.status_code == 200


def _generate(client, plan_id):
    res = client.post(f"/api/v1/plans/{plan_id}/generate", json={"language": "en"}, headers=H)
    assert res.status_code == 200, res.get_json()
    return res.get_json()


class TestPlanCRUD:

    def test_create_and_get(self, client):
        plan = _create(client)
        assert plan["status"] == "Draft"
        assert plan["total_questions"] == 2

        res = client.get(f"/api/v1/plans/{plan['id']}", headers=H)
        assert res.status_code == 200
        assert res.get_json()["title"] == "Corner Bakery"

    def test_list_only_own_plans(self, client):
        _create(client)
        _create(client, title="Second")
        client.post("/api/v1/plans", json={"title": "Theirs", "category": "Standard"},
                    headers={"X-User-Id": "someone-else"})

        res = client.get("/api/v1/plans", headers=H)
        body = res.get_json()
        assert body["total"] == 2
        assert "sections" not in body["items"][0]

    def test_missing_actor_header(self, client):
        res = client.post("/api/v1/plans", json={"title": "X", "category": "Standard"})
        assert res.status_code == 400
        assert res.get_json()["kind"] == "InvalidArgument"

    def test_actor_from_body(self, client):
        res = client.post("/api/v1/plans", json={"title": "X", "category": "Standard", "user_id": "u-9"})
        assert res.status_code == 201
        assert res.get_json()["owner"] == "u-9"

    def test_invalid_category_is_422(self, client):
        res = client.post("/api/v1/plans", json={"title": "X", "category": "Nope"}, headers=H)
        assert res.status_code == 422
        body = res.get_json()
        assert body["kind"] == "InvalidArgument"
        assert "details" in body

    def test_unknown_plan_is_404(self, client):
        res = client.get("/api/v1/plans/missing", headers=H)
        assert res.status_code == 404
        assert res.get_json()["kind"] == "NotFound"

    def test_stranger_cannot_read(self, client):
        plan = _create(client)
        res = client.get(f"/api/v1/plans/{plan['id']}", headers={"X-User-Id": "stranger"})
        assert res.status_code == 409
        assert res.get_json()["kind"] == "PreconditionFailed"

    def test_delete(self, client):
        plan = _create(client)
        res = client.delete(f"/api/v1/plans/{plan['id']}", headers=H)
        assert res.status_code == 200
        assert client.get(f"/api/v1/plans/{plan['id']}", headers=H).status_code == 404


class TestQuestionnaireAPI:

    def test_answers_drive_progress(self, client):
        plan = _create(client)
        res = client.post(f"/api/v1/plans/{plan['id']}/answers",
                          json={"question_key": "q1", "answer": "Bread"}, headers=H)
        assert res.get_json()["progress"]["completion_percentage"] == 50.0

        res = client.post(f"/api/v1/plans/{plan['id']}/answers",
                          json={"question_key": "q2", "answer": "Locals"}, headers=H)
        body = res.get_json()
        assert body["questionnaire_completed"] is True
        assert body["progress"]["status"] == "QuestionnaireComplete"

        progress = client.get(f"/api/v1/plans/{plan['id']}/progress", headers=H).get_json()
        assert progress["completion_percentage"] == 100.0

    def test_list_answers(self, client):
        plan = _create(client)
        body = client.get(f"/api/v1/plans/{plan['id']}/answers", headers=H).get_json()
        assert [a["question_key"] for a in body["items"]] == ["q1", "q2"]

    def test_question_key_required(self, client):
        plan = _create(client)
        res = client.post(f"/api/v1/plans/{plan['id']}/answers", json={"answer": "x"}, headers=H)
        assert res.status_code == 400


class TestTransitionsAndEdits:

    def test_finalize_flow(self, client):
        plan = _create(client)
        _answer_all(client, plan["id"])
        _generate(client, plan["id"])

        res = client.post(f"/api/v1/plans/{plan['id']}/transition", json={"action": "finalize"}, headers=H)
        assert res.status_code == 200
        assert res.get_json()["new_status"] == "Finalized"

        res = client.post(f"/api/v1/plans/{plan['id']}/transition", json={"action": "finalize"}, headers=H)
        assert res.status_code == 409

    def test_transition_before_generation(self, client):
        plan = _create(client)
        res = client.post(f"/api/v1/plans/{plan['id']}/transition",
                          json={"action": "submit_for_review"}, headers=H)
        assert res.status_code == 409

    @pytest.mark.parametrize("body", [{}, {"action": ""}])
    def test_action_required(self, client, body):
        plan = _create(client)
        res = client.post(f"/api/v1/plans/{plan['id']}/transition", json=body, headers=H)
        assert res.status_code == 400

    def test_section_edit(self, client):
        plan = _create(client)
        _answer_all(client, plan["id"])
        _generate(client, plan["id"])

        res = client.put(f"/api/v1/plans/{plan['id']}/sections/Solution",
                         json={"content": "Our own words"}, headers=H)
        assert res.status_code == 200
        assert res.get_json()["sections"]["Solution"] == "Our own words"

    def test_section_edit_requires_content(self, client):
        plan = _create(client)
        res = client.put(f"/api/v1/plans/{plan['id']}/sections/Solution", json={}, headers=H)
        assert res.status_code == 400
