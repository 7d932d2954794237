"""
User repository: the persistence contract the identity core depends on.

Lookups return None for "not found"; mutations of a missing identity raise
NotFoundError. Authorization is the caller's job (list_all included).
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import ConflictError, NotFoundError
from src.kernel.models.user import User


class UniquenessError(ConflictError):
    """An identity with this email already exists."""


class UserRepository(ABC):
    """Abstract persistence contract for identities."""

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[User]:
        ...

    @abstractmethod
    async def create(self, user: User) -> int:
        """Persist a new identity and return its assigned id. Raises UniquenessError."""

    @abstractmethod
    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        ...

    @abstractmethod
    async def set_email_verified(self, user_id: int) -> None:
        ...

    @abstractmethod
    async def bump_token_epoch(self, user_id: int) -> int:
        """Increment the identity's token epoch and return the new value."""

    @abstractmethod
    async def bump_token_epoch_if(self, user_id: int, expected_epoch: int) -> bool:
        """Increment the token epoch only if it still equals expected_epoch; False if it moved on."""

    @abstractmethod
    async def update_profile(
        self,
        user_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        ...

    @abstractmethod
    async def list_all(self) -> Sequence[User]:
        ...


class SqlAlchemyUserRepository(UserRepository):
    """UserRepository backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email(self, email: str) -> Optional[User]:
        query = select(User).where(User.email == email.strip())
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def create(self, user: User) -> int:
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # The session is unusable after this; the request rolls back
            raise UniquenessError() from exc
        await self.session.refresh(user)
        return user.id

    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        await self._update(user_id, password_hash=password_hash)

    async def set_email_verified(self, user_id: int) -> None:
        await self._update(user_id, email_verified=True)

    async def bump_token_epoch(self, user_id: int) -> int:
        user = await self._get_or_raise(user_id)
        await self._update(user_id, token_epoch=User.token_epoch + 1)
        await self.session.refresh(user, attribute_names=["token_epoch"])
        return user.token_epoch

    async def bump_token_epoch_if(self, user_id: int, expected_epoch: int) -> bool:
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, User.token_epoch == expected_epoch)
            .values(token_epoch=User.token_epoch + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        user = await self.session.get(User, user_id)
        await self.session.refresh(user, attribute_names=["token_epoch"])
        return True

    async def update_profile(
        self,
        user_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        user = await self._get_or_raise(user_id)
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def list_all(self) -> Sequence[User]:
        result = await self.session.execute(select(User).order_by(User.id))
        return result.scalars().all()

    async def _get_or_raise(self, user_id: int) -> User:
        user = await self.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    async def _update(self, user_id: int, **values) -> None:
        result = await self.session.execute(
            update(User).where(User.id == user_id).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError("User")
