"""User management service."""

from collections.abc import Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sleep_advice_server.models.sleep import SleepRecord
from sleep_advice_server.models.user import User
from sleep_advice_server.schemas.sleep import UserCreate, UserUpdate

logger = structlog.get_logger()


class UserService:
    """CRUD operations on users."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.logger = logger.bind(service="users")

    async def list_users(self) -> Sequence[User]:
        result = await self.session.execute(select(User).order_by(User.id))
        return result.scalars().all()

    async def get_user(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def create_user(self, data: UserCreate) -> User:
        """Insert a user and commit.

        Raises:
            sqlalchemy.exc.IntegrityError: If the email is already taken
        """
        user = User(name=data.name, email=data.email)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        self.logger.info("User created", user_id=user.id)
        return user

    async def update_user(self, user_id: int, data: UserUpdate) -> User | None:
        """Apply the provided fields; returns None if the user does not exist."""
        user = await self.get_user(user_id)
        if user is None:
            return None

        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(user, field, value)

        await self.session.commit()
        await self.session.refresh(user)
        return user

    async def delete_user(self, user_id: int) -> bool:
        """Delete a user and their sleep records."""
        user = await self.get_user(user_id)
        if user is None:
            return False

        await self.session.execute(delete(SleepRecord).where(SleepRecord.user_id == user_id))
        await self.session.delete(user)
        await self.session.commit()

        self.logger.info("User deleted", user_id=user_id)
        return True
