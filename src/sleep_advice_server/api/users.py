"""User CRUD endpoints."""

from typing import Any

from litestar import Router, delete, get, post, put
from litestar.exceptions import ClientException, NotFoundException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED, HTTP_409_CONFLICT
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sleep_advice_server.core.responses import success_response
from sleep_advice_server.models.user import User
from sleep_advice_server.schemas.sleep import UserCreate, UserUpdate
from sleep_advice_server.services.users import UserService


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "createdAt": user.created_at.isoformat(),
        "updatedAt": user.updated_at.isoformat(),
    }


@get("/users", status_code=HTTP_200_OK)
async def list_users(session: AsyncSession) -> dict[str, Any]:
    """List all users."""
    users = await UserService(session).list_users()
    return success_response([serialize_user(user) for user in users])


@get("/users/{user_id:int}", status_code=HTTP_200_OK)
async def get_user(user_id: int, session: AsyncSession) -> dict[str, Any]:
    """Get one user.

    Raises:
        NotFoundException: If the user does not exist
    """
    user = await UserService(session).get_user(user_id)
    if user is None:
        raise NotFoundException(f"User {user_id} not found")
    return success_response(serialize_user(user))


@post("/users", status_code=HTTP_201_CREATED)
async def create_user(data: UserCreate, session: AsyncSession) -> dict[str, Any]:
    """Create a user.

    Raises:
        ClientException: 409 if the email is already registered
    """
    try:
        user = await UserService(session).create_user(data)
    except IntegrityError as e:
        await session.rollback()
        raise ClientException(
            f"Email {data.email} is already registered", status_code=HTTP_409_CONFLICT
        ) from e
    return success_response(serialize_user(user), "User created successfully")


@put("/users/{user_id:int}", status_code=HTTP_200_OK)
async def update_user(user_id: int, data: UserUpdate, session: AsyncSession) -> dict[str, Any]:
    """Update a user's name or email.

    Raises:
        NotFoundException: If the user does not exist
        ClientException: 409 if the new email is already registered
    """
    try:
        user = await UserService(session).update_user(user_id, data)
    except IntegrityError as e:
        await session.rollback()
        raise ClientException(
            f"Email {data.email} is already registered", status_code=HTTP_409_CONFLICT
        ) from e

    if user is None:
        raise NotFoundException(f"User {user_id} not found")
    return success_response(serialize_user(user), "User updated successfully")


@delete("/users/{user_id:int}", status_code=HTTP_200_OK)
async def delete_user(user_id: int, session: AsyncSession) -> dict[str, Any]:
    """Delete a user together with their sleep records.

    Raises:
        NotFoundException: If the user does not exist
    """
    if not await UserService(session).delete_user(user_id):
        raise NotFoundException(f"User {user_id} not found")
    return success_response(None, "User deleted successfully")


users_router = Router(
    path="/",
    route_handlers=[list_users, get_user, create_user, update_user, delete_user],
    tags=["Users"],
)
