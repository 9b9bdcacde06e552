"""
Generation, version, share and health API tests.

The app under test uses the LLM gateway with the local stub model, so
generated sections carry the stub's "## <Section>" heading.
"""

from planforge.ai.task_runner import GenerationTaskRunner
from planforge.models import db
from planforge.models.ai import AIUsageLog

H = {"X-User-Id": "owner-1"}


def _ready_plan(client, category="LeanCanvas"):
    res = client.post("/api/v1/plans", json={
        "title": "Harbour Ferries",
        "category": category,
        "questions": [{"key": "q1", "text": "What is the route?"}],
    }, headers=H)
    plan_id = res.get_json()["id"]
    client.post(f"/api/v1/plans/{plan_id}/answers", json={"question_key": "q1", "answer": "Cross-bay"}, headers=H)
    return plan_id


def _generated_plan(client):
    plan_id = _ready_plan(client)
    res = client.post(f"/api/v1/plans/{plan_id}/generate", json={"language": "en"}, headers=H)
    assert res.status_code == 200, res.get_json()
    return plan_id


class TestGenerationAPI:

    def test_sync_generation(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/generate", json={"language": "en"}, headers=H)
        assert res.status_code == 200
        body = res.get_json()
        assert body["plan"]["status"] == "Generated"
        assert body["plan"]["sections"]["ExecutiveSummary"].startswith("## ExecutiveSummary")
        assert body["generation"]["completed_sections"] == 14
        assert AIUsageLog.query.filter_by(plan_id=plan_id).count() == 14

    def test_generation_requires_complete_questionnaire(self, client):
        res = client.post("/api/v1/plans", json={"title": "X", "category": "Standard"}, headers=H)
        plan_id = res.get_json()["id"]
        res = client.post(f"/api/v1/plans/{plan_id}/generate", json={"language": "en"}, headers=H)
        assert res.status_code == 409
        assert res.get_json()["kind"] == "PreconditionFailed"

    def test_unsupported_language(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/generate", json={"language": "de"}, headers=H)
        assert res.status_code == 422

    def test_default_language_from_config(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/generate", headers=H)
        assert res.status_code == 200

    def test_regenerate_section(self, client):
        plan_id = _generated_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/regenerate/Solution", json={"language": "fr"}, headers=H)
        assert res.status_code == 200
        body = res.get_json()
        assert body["section"] == "Solution"
        assert body["content"].startswith("## Solution")

    def test_regenerate_invalid_section(self, client):
        plan_id = _generated_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/regenerate/ExitStrategy", json={"language": "en"}, headers=H)
        assert res.status_code == 422

    def test_expand_section_returns_rewrite_for_review(self, client):
        plan_id = _generated_plan(client)
        before = client.get(f"/api/v1/plans/{plan_id}", headers=H).get_json()["sections"]["Solution"]

        res = client.post(f"/api/v1/plans/{plan_id}/sections/Solution/expand",
                          json={"language": "en", "instructions": "Add a rollout timeline"}, headers=H)
        assert res.status_code == 200, res.get_json()
        body = res.get_json()
        assert body["improvement_type"] == "expand"
        assert body["original_content"] == before
        assert body["improved_content"].startswith("## Solution")
        assert body["word_count"] > 0

        after = client.get(f"/api/v1/plans/{plan_id}", headers=H).get_json()["sections"]["Solution"]
        assert after == before
        assert AIUsageLog.query.filter_by(plan_id=plan_id, purpose="expand:Solution").count() == 1

    def test_improve_section_validation(self, client):
        plan_id = _generated_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/sections/Solution/improve",
                          json={"language": "en", "max_length": "long"}, headers=H)
        assert res.status_code == 422
        assert res.get_json()["kind"] == "InvalidArgument"

        res = client.post(f"/api/v1/plans/{plan_id}/sections/Solution/rewrite", json={}, headers=H)
        assert res.status_code == 404

        res = client.post(f"/api/v1/plans/{plan_id}/sections/Solution/simplify", json={"language": "en"})
        assert res.status_code == 400

    def test_generation_status(self, client):
        plan_id = _ready_plan(client)
        body = client.get(f"/api/v1/plans/{plan_id}/generation-status", headers=H).get_json()
        assert body["total_sections"] == 14
        assert body["completed_sections"] == 0
        assert body["status"] == "QuestionnaireComplete"

    def test_async_generation(self, app, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/generate?async=true", json={"language": "en"}, headers=H)
        assert res.status_code == 202
        task_id = res.get_json()["id"]

        assert GenerationTaskRunner.join(task_id, timeout=10)
        db.session.expire_all()
        body = client.get(f"/api/v1/generation-tasks/{task_id}", headers=H).get_json()
        assert body["status"] == "completed"
        assert body["result"]["status"] == "Generated"


class TestVersionAPI:

    def test_snapshot_list_get_restore(self, client):
        plan_id = _generated_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/versions", json={"comment": "first"}, headers=H)
        assert res.status_code == 201
        assert res.get_json()["version_number"] == 1

        client.put(f"/api/v1/plans/{plan_id}/sections/Solution", json={"content": "changed"}, headers=H)

        listing = client.get(f"/api/v1/plans/{plan_id}/versions", headers=H).get_json()
        assert listing["total"] == 1

        detail = client.get(f"/api/v1/plans/{plan_id}/versions/1", headers=H).get_json()
        assert detail["content"]["solution"].startswith("## Solution")

        restored = client.post(f"/api/v1/plans/{plan_id}/versions/1/restore", headers=H).get_json()
        assert restored["sections"]["Solution"].startswith("## Solution")

        listing = client.get(f"/api/v1/plans/{plan_id}/versions", headers=H).get_json()
        assert [v["version_number"] for v in listing["items"]] == [2, 1]
        assert listing["items"][0]["comment"] == "Backup before restore"

    def test_unknown_version(self, client):
        plan_id = _generated_plan(client)
        res = client.get(f"/api/v1/plans/{plan_id}/versions/5", headers=H)
        assert res.status_code == 404


class TestShareAPI:

    def test_user_share_grants_read(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/shares",
                          json={"shared_with_user": "bob", "permission": "ReadOnly"}, headers=H)
        assert res.status_code == 201

        res = client.get(f"/api/v1/plans/{plan_id}", headers={"X-User-Id": "bob"})
        assert res.status_code == 200

        res = client.post(f"/api/v1/plans/{plan_id}/answers", json={"question_key": "q1", "answer": "x"},
                          headers={"X-User-Id": "bob"})
        assert res.status_code == 409

    def test_public_link(self, client):
        plan_id = _ready_plan(client)
        share = client.post(f"/api/v1/plans/{plan_id}/shares", json={"is_public": True}, headers=H).get_json()
        assert len(share["public_token"]) == 22

        res = client.get(f"/api/v1/shared/{share['public_token']}")
        assert res.status_code == 200
        assert res.get_json()["plan"]["id"] == plan_id

        client.delete(f"/api/v1/plans/{plan_id}/shares/{share['id']}", headers=H)
        res = client.get(f"/api/v1/shared/{share['public_token']}")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Invalid or expired share token"

    def test_public_with_user_rejected(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/shares",
                          json={"is_public": True, "shared_with_user": "bob"}, headers=H)
        assert res.status_code == 422

    def test_expired_share(self, client):
        plan_id = _ready_plan(client)
        share = client.post(f"/api/v1/plans/{plan_id}/shares", json={
            "shared_with_email": "carol@example.com",
            "expires_at": "2000-01-01T00:00:00Z",
        }, headers=H).get_json()
        assert share["can_access"] is False

        res = client.post(f"/api/v1/plans/{plan_id}/shares/{share['id']}/access")
        assert res.get_json()["access_count"] == 1

    def test_bad_expiry(self, client):
        plan_id = _ready_plan(client)
        res = client.post(f"/api/v1/plans/{plan_id}/shares",
                          json={"shared_with_user": "bob", "expires_at": "tomorrow"}, headers=H)
        assert res.status_code == 422

    def test_permission_update_and_reactivate(self, client):
        plan_id = _ready_plan(client)
        share = client.post(f"/api/v1/plans/{plan_id}/shares", json={"shared_with_user": "bob"},
                            headers=H).get_json()
        res = client.put(f"/api/v1/plans/{plan_id}/shares/{share['id']}/permission",
                         json={"permission": "Edit"}, headers=H)
        assert res.get_json()["permission"] == "Edit"

        client.delete(f"/api/v1/plans/{plan_id}/shares/{share['id']}", headers=H)
        assert client.get(f"/api/v1/plans/{plan_id}/shares", headers=H).get_json()["total"] == 0

        res = client.post(f"/api/v1/plans/{plan_id}/shares/{share['id']}/reactivate", headers=H)
        assert res.get_json()["is_active"] is True


class TestHealthAPI:

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["content_generator"]["model"] == "local-stub"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
