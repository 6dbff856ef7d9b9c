"""
Exam Session Engine - Session and Attempts API Tests
"""
import pytest
from httpx import AsyncClient

from examcore.services.errors import AttemptPersistenceError


async def start(client: AsyncClient) -> dict:
    response = await client.post("/api/v1/sessions", json={"test_id": "mock-jee-1"})
    assert response.status_code == 201
    return response.json()


class TestSessionEndpoints:
    """Taking a test over HTTP."""

    @pytest.mark.asyncio
    async def test_start_session(self, client: AsyncClient):
        data = await start(client)

        assert data["active_question_id"] == "p1"
        assert data["remaining_seconds"] == 600
        assert data["duration_seconds"] == 600
        assert [q["question_id"] for q in data["questions"]] == ["p1", "p2", "p3", "c1", "c2"]
        assert "correct_options" not in data["questions"][0]
        assert data["palette"][0]["status"] == "not-answered"
        assert data["palette"][1]["status"] == "not-visited"

    @pytest.mark.asyncio
    async def test_start_unknown_test(self, client: AsyncClient):
        response = await client.post("/api/v1/sessions", json={"test_id": "nope"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_student_header_required(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/sessions",
            json={"test_id": "mock-jee-1"},
            headers={"X-Student-Id": ""},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_answer_mark_and_clear(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]

        response = await client.put(
            f"/api/v1/sessions/{session_id}/answers/p1",
            json={"answer": {"kind": "single", "option_index": 2}},
        )
        assert response.status_code == 200
        assert response.json()["answers"]["p1"] == {"kind": "single", "option_index": 2}

        response = await client.post(f"/api/v1/sessions/{session_id}/questions/p1/mark")
        assert response.json()["palette"][0]["status"] == "answered-and-marked"

        response = await client.delete(f"/api/v1/sessions/{session_id}/answers/p1")
        assert response.json()["palette"][0]["status"] == "marked-for-review"
        assert response.json()["answers"] == {}

    @pytest.mark.asyncio
    async def test_wrong_answer_shape(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]

        response = await client.put(
            f"/api/v1/sessions/{session_id}/answers/p1",
            json={"answer": {"kind": "numeric", "value": 3}},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_mark_unvisited_question(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]
        response = await client.post(f"/api/v1/sessions/{session_id}/questions/c2/mark")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_navigate(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]

        response = await client.post(f"/api/v1/sessions/{session_id}/navigate", json={"direction": "next"})
        assert response.json()["active_question_id"] == "p2"

        response = await client.post(f"/api/v1/sessions/{session_id}/navigate", json={"question_id": "c1"})
        assert response.json()["current_section_id"] == "chemistry"

        response = await client.post(f"/api/v1/sessions/{session_id}/navigate", json={})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_other_student_cannot_see_session(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]
        response = await client.get(
            f"/api/v1/sessions/{session_id}",
            headers={"X-Student-Id": "student-2"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_timer_runs_out(self, client: AsyncClient, clock):
        session_id = (await start(client))["session_id"]
        clock.advance(600)

        response = await client.get(f"/api/v1/sessions/{session_id}")

        assert response.json()["closed"] is True
        assert response.json()["remaining_seconds"] == 0
        response = await client.post(f"/api/v1/sessions/{session_id}/submit")
        assert response.status_code == 409


class TestSubmitEndpoints:
    @pytest.mark.asyncio
    async def test_submit_then_resubmit(self, client: AsyncClient, drafts):
        session_id = (await start(client))["session_id"]
        await client.put(
            f"/api/v1/sessions/{session_id}/answers/p1",
            json={"answer": {"kind": "single", "option_index": 2}},
        )

        response = await client.post(f"/api/v1/sessions/{session_id}/submit")

        assert response.status_code == 200
        data = response.json()
        assert data["persisted"] is True
        assert data["result"]["total_score"] == 4
        assert data["result"]["reason"] == "manual"
        assert await drafts.load(session_id) is None

        response = await client.post(f"/api/v1/sessions/{session_id}/submit")
        assert response.status_code == 409
        assert (await client.get(f"/api/v1/sessions/{session_id}")).status_code == 409

    @pytest.mark.asyncio
    async def test_persistence_failure_then_retry(self, client: AsyncClient, manager, monkeypatch):
        session_id = (await start(client))["session_id"]
        repository = manager.repository
        real_submit = repository.submit_attempt

        async def failing(result):
            raise AttemptPersistenceError("database unavailable")

        monkeypatch.setattr(repository, "submit_attempt", failing)
        manager.get(session_id, "student-1").coordinator.backoff_seconds = 0

        response = await client.post(f"/api/v1/sessions/{session_id}/submit")

        assert response.status_code == 503
        retained = response.json()["detail"]["result"]
        assert retained["session_id"] == session_id

        monkeypatch.setattr(repository, "submit_attempt", real_submit)
        response = await client.post(f"/api/v1/sessions/{session_id}/submit/retry")

        assert response.status_code == 200
        assert response.json()["persisted"] is True
        assert response.json()["result"] == retained

    @pytest.mark.asyncio
    async def test_retry_before_submit(self, client: AsyncClient):
        session_id = (await start(client))["session_id"]
        response = await client.post(f"/api/v1/sessions/{session_id}/submit/retry")
        assert response.status_code == 409


class TestResume:
    @pytest.mark.asyncio
    async def test_abandon_and_resume(self, client: AsyncClient, clock):
        session_id = (await start(client))["session_id"]
        await client.put(
            f"/api/v1/sessions/{session_id}/answers/p1",
            json={"answer": {"kind": "single", "option_index": 0}},
        )
        clock.advance(120)

        response = await client.delete(f"/api/v1/sessions/{session_id}")
        assert response.status_code == 204
        assert (await client.get(f"/api/v1/sessions/{session_id}")).status_code == 404

        clock.advance(3000)
        response = await client.post(f"/api/v1/sessions/{session_id}/resume")

        assert response.status_code == 200
        data = response.json()
        assert data["remaining_seconds"] == 480
        assert data["answers"]["p1"] == {"kind": "single", "option_index": 0}

    @pytest.mark.asyncio
    async def test_resume_unknown(self, client: AsyncClient):
        response = await client.post("/api/v1/sessions/unknown/resume")
        assert response.status_code == 404


class TestAttemptEndpoints:
    @pytest.mark.asyncio
    async def test_history_and_analysis(self, client: AsyncClient):
        attempt_ids = []
        for option_index in (0, 2):
            session_id = (await start(client))["session_id"]
            await client.put(
                f"/api/v1/sessions/{session_id}/answers/p1",
                json={"answer": {"kind": "single", "option_index": option_index}},
            )
            response = await client.post(f"/api/v1/sessions/{session_id}/submit")
            attempt_ids.append(response.json()["attempt_id"])

        response = await client.get("/api/v1/attempts/history", params={"test_id": "mock-jee-1"})
        assert [h["attempt_number"] for h in response.json()] == [1, 2]

        response = await client.get(f"/api/v1/attempts/{attempt_ids[1]}/analysis")

        assert response.status_code == 200
        report = response.json()
        assert report["subject_wise"]["Physics"]["correct"] == 1
        assert report["historical_comparison"]["score_change"] == 5.0
        assert [p["question_id"] for p in report["progression_metrics"]["accuracy_trend"]] == ["p1"]

    @pytest.mark.asyncio
    async def test_analysis_of_unknown_attempt(self, client: AsyncClient):
        response = await client.get("/api/v1/attempts/nope/analysis")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"
