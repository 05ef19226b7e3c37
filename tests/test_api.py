"""
API tests: status codes, response shapes and authentication for the
exam preview routes.
"""

import pytest

from app.auth import issue_token
from app.schemas import Caller
from app.services.preview import FinalizationPolicy, PreviewService

from conftest import ADMIN, AUTHOR, OTHER_TEACHER, auth_headers


class TestAuthentication:

    def test_missing_token(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/preview")

        assert resp.status_code == 401

    def test_invalid_token(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/preview",
                          headers={"Authorization": "Bearer not-a-jwt"})

        assert resp.status_code == 401

    def test_token_with_wrong_secret(self, client, exam):
        token = issue_token(AUTHOR, secret="a-different-signing-secret-for-tests-0002")
        resp = client.get(f"/api/exams/{exam.id}/preview",
                          headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401

    def test_401_before_exam_lookup(self, client):
        assert client.post("/api/exams/missing/finalize").status_code == 401


class TestPreviewRoutes:

    def test_get_preview(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/preview", headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        assert "X-Request-ID" in resp.headers
        preview = resp.json()["preview"]
        assert preview["examId"] == exam.id
        assert preview["totalQuestions"] == 3
        assert preview["totalPoints"] == 4.0
        assert preview["previewState"] == "DRAFT"
        assert preview["questions"][1]["negativeMark"] == 0.25
        assert preview["questions"][0]["options"][0]["isCorrect"] is True

    def test_get_preview_forbidden(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/preview", headers=auth_headers(OTHER_TEACHER))

        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"

    def test_get_preview_admin(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/preview", headers=auth_headers(ADMIN))

        assert resp.status_code == 200

    def test_get_preview_not_found(self, client):
        resp = client.get("/api/exams/missing/preview", headers=auth_headers(AUTHOR))

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_marking_stats(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/marking-stats", headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        body = resp.json()
        scheme = body["markingScheme"]
        assert scheme["totalPoints"] == 4.0
        assert scheme["averagePoints"] == pytest.approx(1.33)
        assert scheme["totalNegativeMark"] == 0.25
        assert scheme["questionsWithPartialCredit"] == 0
        assert len(scheme["questions"]) == 3
        assert body["maxScore"] == 4.0
        assert body["minScore"] == -0.25


class TestTransitionRoutes:

    def test_complete_twice(self, client, exam):
        first = client.post(f"/api/exams/{exam.id}/preview/complete", headers=auth_headers(AUTHOR))
        second = client.post(f"/api/exams/{exam.id}/preview/complete", headers=auth_headers(AUTHOR))

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["changed"] is True
        assert second.json()["changed"] is False
        assert second.json()["exam"]["previewState"] == "PREVIEW_COMPLETE"

    def test_start_preview(self, client, exam):
        resp = client.post(f"/api/exams/{exam.id}/preview/start", headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        assert resp.json()["exam"]["previewState"] == "PREVIEW_IN_PROGRESS"

    def test_finalize_twice(self, client, exam):
        first = client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))
        second = client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["exam"]["previewState"] == "FINALIZED"
        assert second.json()["exam"]["approvalStatus"] == "PENDING"

    def test_complete_after_finalize_conflicts(self, client, exam):
        client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))

        resp = client.post(f"/api/exams/{exam.id}/preview/complete", headers=auth_headers(AUTHOR))

        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"

    def test_strict_policy_conflicts(self, client, store, exam):
        from app.main import app
        from app.routes.exam_preview import get_preview_service

        app.dependency_overrides[get_preview_service] = lambda: PreviewService(
            store, policy=FinalizationPolicy(require_preview_complete=True))

        resp = client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))

        assert resp.status_code == 409

    def test_finalize_not_found(self, client):
        resp = client.post("/api/exams/missing/finalize", headers=auth_headers(AUTHOR))

        assert resp.status_code == 404


class TestMarkingRoute:

    def test_update_marking(self, client, exam):
        resp = client.put(f"/api/exams/{exam.id}/questions/1/marking",
                          json={"points": 2, "negativeMark": 0.5, "partialCredit": True},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        scheme = resp.json()["markingScheme"]
        assert scheme["totalPoints"] == 5.0
        assert scheme["questionsWithPartialCredit"] == 1
        assert scheme["questions"][1]["partialCredit"] is True

    def test_patch_alias(self, client, exam):
        resp = client.patch(f"/api/exams/{exam.id}/questions/0/marking",
                            json={"points": 3},
                            headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        assert resp.json()["markingScheme"]["totalPoints"] == 6.0

    def test_negative_points_bad_request(self, client, exam):
        resp = client.put(f"/api/exams/{exam.id}/questions/0/marking",
                          json={"points": -1, "negativeMark": 0, "partialCredit": False},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"

        stats = client.get(f"/api/exams/{exam.id}/marking-stats", headers=auth_headers(AUTHOR)).json()
        assert stats["markingScheme"]["questions"][0]["points"] == 1.0

    def test_non_numeric_points_bad_request(self, client, exam):
        resp = client.put(f"/api/exams/{exam.id}/questions/0/marking",
                          json={"points": "abc"},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"
        assert "points" in resp.json()["detail"]

    @pytest.mark.parametrize("points", ["1e30", "1e400", 0.125])
    def test_out_of_range_points_bad_request(self, client, exam, points):
        resp = client.put(f"/api/exams/{exam.id}/questions/0/marking",
                          json={"points": points},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"

        stats = client.get(f"/api/exams/{exam.id}/marking-stats", headers=auth_headers(AUTHOR))
        assert stats.status_code == 200
        assert stats.json()["markingScheme"]["questions"][0]["points"] == 1.0
        assert stats.json()["markingScheme"]["totalPoints"] == 4.0

    def test_locked_after_finalize(self, client, exam):
        client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))

        resp = client.put(f"/api/exams/{exam.id}/questions/0/marking",
                          json={"points": 2, "negativeMark": 0, "partialCredit": False},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 409
        assert resp.json()["error"] == "locked"

    def test_index_out_of_range(self, client, exam):
        resp = client.put(f"/api/exams/{exam.id}/questions/3/marking",
                          json={"points": 1},
                          headers=auth_headers(AUTHOR))

        assert resp.status_code == 404
        assert resp.json()["error"] == "index_out_of_range"

    def test_forbidden(self, client, exam):
        resp = client.put(f"/api/exams/{exam.id}/questions/0/marking",
                          json={"points": 1},
                          headers=auth_headers(Caller(id="someone-else", role="student")))

        assert resp.status_code == 403


class TestAuditRoute:

    def test_audit_logs(self, client, exam):
        client.post(f"/api/exams/{exam.id}/preview/complete", headers=auth_headers(AUTHOR))
        client.post(f"/api/exams/{exam.id}/finalize", headers=auth_headers(AUTHOR))

        resp = client.get(f"/api/exams/{exam.id}/audit-logs", headers=auth_headers(AUTHOR))

        assert resp.status_code == 200
        actions = {entry["action"] for entry in resp.json()["data"]}
        assert actions == {"exam_preview_completed", "exam_finalized"}
        assert all(entry["userAgent"] for entry in resp.json()["data"])

    def test_bad_limit_bad_request(self, client, exam):
        resp = client.get(f"/api/exams/{exam.id}/audit-logs?limit=0", headers=auth_headers(AUTHOR))

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
