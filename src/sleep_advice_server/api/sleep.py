"""Sleep record, statistics and advice endpoints."""

from typing import Annotated, Any

from litestar import Response, Router, delete, get, post, put
from litestar.background_tasks import BackgroundTask
from litestar.exceptions import NotFoundException, ValidationException
from litestar.params import Parameter
from litestar.response import Stream
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from sqlalchemy.ext.asyncio import AsyncSession

from sleep_advice_server.core.responses import success_response
from sleep_advice_server.models.sleep import SleepRecord
from sleep_advice_server.schemas.sleep import SleepRecordCreate, SleepRecordUpdate
from sleep_advice_server.services.advice import AdviceService
from sleep_advice_server.services.advice_session import INSUFFICIENT_DATA_MESSAGE
from sleep_advice_server.services.sleep import SleepRecordService
from sleep_advice_server.services.sse import SSE_HEADERS, SSE_MEDIA_TYPE
from sleep_advice_server.services.users import UserService

UserIdQuery = Annotated[int, Parameter(query="userId", ge=1, description="User identifier")]


def serialize_record(record: SleepRecord, include_email: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": record.id,
        "userId": record.user_id,
        "sleep_time": record.sleep_time.isoformat(),
        "wake_time": record.wake_time.isoformat(),
        "duration": record.duration,
    }
    if include_email:
        data["userEmail"] = record.user.email if record.user else None
    return data


async def _require_user(session: AsyncSession, user_id: int) -> None:
    if await UserService(session).get_user(user_id) is None:
        raise NotFoundException(f"User {user_id} not found")


@get("/sleep", status_code=HTTP_200_OK)
async def list_sleep_records(
    session: AsyncSession,
    user_id: Annotated[
        int | None, Parameter(query="userId", ge=1, required=False, description="Filter by user")
    ] = None,
) -> dict[str, Any]:
    """List sleep records, most recent first.

    Example:
        GET /api/sleep?userId=1
    """
    records = await SleepRecordService(session).list_records(user_id)
    return success_response([serialize_record(r, include_email=True) for r in records])


@post("/sleep", status_code=HTTP_201_CREATED)
async def create_sleep_record(data: SleepRecordCreate, session: AsyncSession) -> dict[str, Any]:
    """Record one sleep period; duration is derived from the timestamps.

    Raises:
        NotFoundException: If the user does not exist
    """
    await _require_user(session, data.user_id)
    record = await SleepRecordService(session).create_record(data)
    return success_response(serialize_record(record), "Sleep record created successfully")


@put("/sleep/{record_id:int}", status_code=HTTP_200_OK)
async def update_sleep_record(
    record_id: int,
    data: SleepRecordUpdate,
    session: AsyncSession,
) -> dict[str, Any]:
    """Update a sleep record.

    Raises:
        NotFoundException: If the record or the new user does not exist
        ValidationException: If the resulting sleep window is invalid
    """
    if data.user_id is not None:
        await _require_user(session, data.user_id)

    try:
        record = await SleepRecordService(session).update_record(record_id, data)
    except ValueError as e:
        raise ValidationException(str(e)) from e

    if record is None:
        raise NotFoundException(f"Sleep record {record_id} not found")
    return success_response(serialize_record(record), "Sleep record updated successfully")


@delete("/sleep/{record_id:int}", status_code=HTTP_200_OK)
async def delete_sleep_record(record_id: int, session: AsyncSession) -> dict[str, Any]:
    """Delete a sleep record.

    Raises:
        NotFoundException: If the record does not exist
    """
    if not await SleepRecordService(session).delete_record(record_id):
        raise NotFoundException(f"Sleep record {record_id} not found")
    return success_response(None, "Sleep record deleted successfully")


@get("/sleep/stats", status_code=HTTP_200_OK)
async def get_sleep_stats(session: AsyncSession, user_id: UserIdQuery) -> dict[str, Any]:
    """Weekly sleep statistics for a user.

    Returns:
        ``weeklySleepData`` (oldest day first) and ``dailyAverageSleep``

    Example:
        GET /api/sleep/stats?userId=1
    """
    stats = await SleepRecordService(session).get_weekly_stats(user_id)
    return success_response(stats.model_dump(mode="json", by_alias=True))


@get("/sleep/advice", status_code=HTTP_200_OK)
async def stream_sleep_advice(
    session: AsyncSession,
    advice_service: AdviceService,
    user_id: UserIdQuery,
) -> Response[Any]:
    """Stream AI sleep advice as Server-Sent Events.

    With no sleep data in the window, answers immediately with an ordinary
    JSON envelope instead of opening a stream.

    Example:
        GET /api/sleep/advice?userId=1

        data: {"type": "start", "message": "Analyzing your sleep data..."}
        data: {"type": "chunk", "text": "Your", "fullText": "Your", "isComplete": false}
        data: {"type": "complete", "fullText": "Your ...", "isComplete": true}
    """
    stats = await SleepRecordService(session).get_weekly_stats(user_id)
    if stats.is_empty:
        return Response(content=success_response({"advice": INSUFFICIENT_DATA_MESSAGE}))

    advice_session = advice_service.open_session(user_id, stats)
    transport = advice_service.open_transport()
    return Stream(
        transport.frames(advice_session.run),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
        # Also runs when the client disconnects mid-stream
        background=BackgroundTask(transport.detach),
    )


sleep_router = Router(
    path="/",
    route_handlers=[
        list_sleep_records,
        create_sleep_record,
        update_sleep_record,
        delete_sleep_record,
        get_sleep_stats,
        stream_sleep_advice,
    ],
    tags=["Sleep"],
)
