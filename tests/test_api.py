"""API endpoint tests."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_503_SERVICE_UNAVAILABLE,
)
from litestar.testing import AsyncTestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from sleep_advice_server.app import create_app
from sleep_advice_server.client.consumer import AdviceStreamConsumer
from sleep_advice_server.core.config import settings
from sleep_advice_server.core.exceptions import ConfigurationError, UpstreamError
from sleep_advice_server.services.advice_session import INSUFFICIENT_DATA_MESSAGE, START_MESSAGE
from tests.fixtures.providers import ScriptedProvider


def parse_sse(body: str) -> list[dict]:
    """Decode every data frame of an SSE body, skipping comments."""
    frames = [frame for frame in body.split("\n\n") if frame.strip()]
    return [json.loads(frame[len("data: ") :]) for frame in frames if frame.startswith("data: ")]


def night(days_ago: int, hours: float) -> dict[str, str]:
    sleep_time = datetime.now(UTC).replace(hour=0, minute=30, second=0, microsecond=0)
    sleep_time -= timedelta(days=days_ago)
    return {
        "sleep_time": sleep_time.isoformat(),
        "wake_time": (sleep_time + timedelta(hours=hours)).isoformat(),
    }


async def test_health_check(client: AsyncTestClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == HTTP_200_OK
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert "version" in data


async def test_health_check_database_down(
    client: AsyncTestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Health check reports a degraded service when the database fails."""

    async def failing_execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(AsyncSession, "execute", failing_execute)

    response = await client.get("/health")

    assert response.status_code == HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unavailable"


async def test_create_app_requires_api_key(
    async_engine, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Without a provider or API key the app refuses to start."""
    monkeypatch.setattr(settings, "gemini_api_key", None)

    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        create_app(engine=async_engine)


class TestUsers:
    """Test user CRUD endpoints."""

    async def test_create_and_get(self, client: AsyncTestClient) -> None:
        response = await client.post("/api/users", json={"name": "Kim", "email": "kim@example.com"})

        assert response.status_code == HTTP_201_CREATED
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User created successfully"
        user_id = body["data"]["id"]

        response = await client.get(f"/api/users/{user_id}")
        assert response.status_code == HTTP_200_OK
        assert response.json()["data"]["email"] == "kim@example.com"
        assert "createdAt" in response.json()["data"]

    async def test_list(self, client: AsyncTestClient, test_user, test_user_2) -> None:
        response = await client.get("/api/users")

        assert response.status_code == HTTP_200_OK
        assert [u["id"] for u in response.json()["data"]] == [test_user.id, test_user_2.id]

    async def test_duplicate_email_conflicts(self, client: AsyncTestClient, test_user) -> None:
        response = await client.post(
            "/api/users", json={"name": "Copy", "email": test_user.email}
        )

        assert response.status_code == HTTP_409_CONFLICT
        assert response.json()["success"] is False
        assert test_user.email in response.json()["error"]

    async def test_invalid_email_rejected(self, client: AsyncTestClient) -> None:
        response = await client.post("/api/users", json={"name": "Kim", "email": "not-an-email"})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False

    async def test_update(self, client: AsyncTestClient, test_user) -> None:
        response = await client.put(f"/api/users/{test_user.id}", json={"name": "Renamed"})

        assert response.status_code == HTTP_200_OK
        data = response.json()["data"]
        assert data["name"] == "Renamed"
        assert data["email"] == test_user.email

    async def test_unknown_user(self, client: AsyncTestClient) -> None:
        assert (await client.get("/api/users/999")).status_code == HTTP_404_NOT_FOUND
        response = await client.put("/api/users/999", json={"name": "Ghost"})
        assert response.status_code == HTTP_404_NOT_FOUND
        assert (await client.delete("/api/users/999")).status_code == HTTP_404_NOT_FOUND

    async def test_delete_removes_sleep_records(
        self, client: AsyncTestClient, user_with_week
    ) -> None:
        user, _ = user_with_week

        response = await client.delete(f"/api/users/{user.id}")

        assert response.status_code == HTTP_200_OK
        assert response.json()["data"] is None
        records = (await client.get("/api/sleep", params={"userId": user.id})).json()["data"]
        assert records == []


class TestSleepRecords:
    """Test sleep record CRUD endpoints."""

    async def test_create_derives_duration(self, client: AsyncTestClient, test_user) -> None:
        response = await client.post(
            "/api/sleep",
            json={"userId": test_user.id, **night(0, 7.25), "duration": 99},
        )

        assert response.status_code == HTTP_201_CREATED
        data = response.json()["data"]
        assert data["userId"] == test_user.id
        assert data["duration"] == 7.2

    async def test_timezone_offsets_stored_as_utc(
        self, client: AsyncTestClient, test_user
    ) -> None:
        response = await client.post(
            "/api/sleep",
            json={
                "userId": test_user.id,
                "sleep_time": "2026-10-18T23:00:00+09:00",
                "wake_time": "2026-10-19T07:00:00+09:00",
            },
        )

        data = response.json()["data"]
        assert data["sleep_time"] == "2026-10-18T14:00:00"
        assert data["duration"] == 8.0

    async def test_wake_before_sleep_rejected(self, client: AsyncTestClient, test_user) -> None:
        times = night(0, 8)
        response = await client.post(
            "/api/sleep",
            json={
                "userId": test_user.id,
                "sleep_time": times["wake_time"],
                "wake_time": times["sleep_time"],
            },
        )

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False

    async def test_unknown_user_rejected(self, client: AsyncTestClient) -> None:
        response = await client.post("/api/sleep", json={"userId": 999, **night(0, 8)})

        assert response.status_code == HTTP_404_NOT_FOUND
        assert response.json() == {"success": False, "error": "User 999 not found"}

    async def test_list_filters_by_user(
        self, client: AsyncTestClient, user_with_week, test_user_2
    ) -> None:
        user, _ = user_with_week
        await client.post("/api/sleep", json={"userId": test_user_2.id, **night(0, 5)})

        response = await client.get("/api/sleep", params={"userId": user.id})

        records = response.json()["data"]
        assert len(records) == 7
        assert {r["userEmail"] for r in records} == {user.email}
        assert records[0]["sleep_time"] > records[-1]["sleep_time"]

        everything = (await client.get("/api/sleep")).json()["data"]
        assert len(everything) == 8

    async def test_update_recomputes_duration(self, client: AsyncTestClient, test_user) -> None:
        created = await client.post("/api/sleep", json={"userId": test_user.id, **night(1, 6)})
        record = created.json()["data"]
        wake_time = datetime.fromisoformat(record["sleep_time"]) + timedelta(hours=9)

        response = await client.put(
            f"/api/sleep/{record['id']}", json={"wake_time": wake_time.isoformat()}
        )

        assert response.status_code == HTTP_200_OK
        assert response.json()["data"]["duration"] == 9.0

    async def test_update_invalid_window(self, client: AsyncTestClient, test_user) -> None:
        created = await client.post("/api/sleep", json={"userId": test_user.id, **night(1, 6)})
        record = created.json()["data"]

        response = await client.put(
            f"/api/sleep/{record['id']}", json={"wake_time": record["sleep_time"]}
        )

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert "wake_time" in response.json()["error"]

    async def test_update_and_delete_unknown_record(self, client: AsyncTestClient) -> None:
        response = await client.put("/api/sleep/999", json={"wake_time": night(0, 8)["wake_time"]})
        assert response.status_code == HTTP_404_NOT_FOUND

        response = await client.delete("/api/sleep/999")
        assert response.status_code == HTTP_404_NOT_FOUND

    async def test_delete(self, client: AsyncTestClient, user_with_week) -> None:
        _, records = user_with_week

        response = await client.delete(f"/api/sleep/{records[0].id}")

        assert response.status_code == HTTP_200_OK
        assert response.json()["message"] == "Sleep record deleted successfully"


class TestSleepStats:
    """Test the weekly statistics endpoint."""

    async def test_week(self, client: AsyncTestClient, user_with_week) -> None:
        user, _ = user_with_week

        response = await client.get("/api/sleep/stats", params={"userId": user.id})

        assert response.status_code == HTTP_200_OK
        data = response.json()["data"]
        assert set(data) == {"weeklySleepData", "dailyAverageSleep"}
        assert data["dailyAverageSleep"] == 7.43
        dates = [entry["date"] for entry in data["weeklySleepData"]]
        assert dates == sorted(dates)
        assert data["weeklySleepData"][-1] == {
            "date": datetime.now(UTC).date().isoformat(),
            "duration": 8.0,
        }

    async def test_empty(self, client: AsyncTestClient, test_user) -> None:
        response = await client.get("/api/sleep/stats", params={"userId": test_user.id})

        assert response.json()["data"] == {"weeklySleepData": [], "dailyAverageSleep": 0.0}

    async def test_missing_user_id(self, client: AsyncTestClient) -> None:
        response = await client.get("/api/sleep/stats")

        assert response.status_code == HTTP_400_BAD_REQUEST


class TestSleepAdvice:
    """Test the streaming advice endpoint."""

    async def test_insufficient_data_is_plain_json(
        self, client: AsyncTestClient, test_user, provider: ScriptedProvider
    ) -> None:
        response = await client.get("/api/sleep/advice", params={"userId": test_user.id})

        assert response.status_code == HTTP_200_OK
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {
            "success": True,
            "data": {"advice": INSUFFICIENT_DATA_MESSAGE},
        }
        assert provider.prompts == []

    async def test_streams_events(
        self, client: AsyncTestClient, user_with_week, provider: ScriptedProvider
    ) -> None:
        user, _ = user_with_week

        response = await client.get("/api/sleep/advice", params={"userId": user.id})

        assert response.status_code == HTTP_200_OK
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["start", "chunk", "chunk", "complete"]
        assert events[0]["message"] == START_MESSAGE
        assert events[1] == {"type": "chunk", "text": "안녕", "fullText": "안녕", "isComplete": False}
        assert events[-1] == {"type": "complete", "fullText": "안녕하세요", "isComplete": True}

    async def test_prompt_built_from_weekly_stats(
        self, client: AsyncTestClient, user_with_week, provider: ScriptedProvider
    ) -> None:
        user, _ = user_with_week

        await client.get("/api/sleep/advice", params={"userId": user.id})

        assert len(provider.prompts) == 1
        assert "Daily average sleep: 7.43 hours" in provider.prompts[0]
        assert "Day 7" in provider.prompts[0]
        assert provider.options[0].temperature == settings.advice_temperature
        assert provider.options[0].max_output_tokens == settings.advice_max_output_tokens

    @pytest.mark.parametrize(
        "provider",
        [ScriptedProvider(["Partial"], error=UpstreamError("Quota exceeded", status_code=429))],
    )
    async def test_upstream_failure_is_an_error_frame(
        self, client: AsyncTestClient, user_with_week, provider: ScriptedProvider
    ) -> None:
        user, _ = user_with_week

        response = await client.get("/api/sleep/advice", params={"userId": user.id})

        assert response.status_code == HTTP_200_OK
        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["start", "chunk", "error"]
        assert events[-1]["message"] == "Quota exceeded"

    async def test_missing_user_id(self, client: AsyncTestClient) -> None:
        response = await client.get("/api/sleep/advice")

        assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_consumer_renders_stream(
        self, client: AsyncTestClient, user_with_week
    ) -> None:
        user, _ = user_with_week

        consumer = AdviceStreamConsumer(str(client.base_url), client=client)
        view = await consumer.request_advice(user.id)

        assert view.text == "안녕하세요"
        assert view.completed is True
        assert view.loading is False
        assert view.error is None
