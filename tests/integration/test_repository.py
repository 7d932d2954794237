"""Integration tests for the SQLAlchemy user repository."""

import pytest

from src.kernel.errors import NotFoundError
from src.kernel.identity.repository import UniquenessError
from src.kernel.models.user import User


class TestLookups:
    @pytest.mark.asyncio
    async def test_find_by_email(self, repository, test_user):
        found = await repository.find_by_email("testuser@example.com")

        assert found is not None
        assert found.id == test_user.id

    @pytest.mark.asyncio
    async def test_find_by_email_trims_whitespace(self, repository, test_user):
        found = await repository.find_by_email("  testuser@example.com ")

        assert found is not None
        assert found.id == test_user.id

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self, repository):
        assert await repository.find_by_email("nobody@example.com") is None
        assert await repository.find_by_id(999) is None

    @pytest.mark.asyncio
    async def test_find_by_id(self, repository, test_user):
        found = await repository.find_by_id(test_user.id)

        assert found.email == "testuser@example.com"


class TestCreate:
    @pytest.mark.asyncio
    async def test_assigns_positive_ids(self, user_factory):
        first = await user_factory(email="first@example.com")
        second = await user_factory(email="second@example.com")

        assert first.id >= 1
        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_defaults(self, repository, test_user):
        user = await repository.find_by_id(test_user.id)

        assert user.token_epoch == 0
        assert user.role == "user"
        assert user.created_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, repository, test_user, hasher):
        duplicate = User(
            email="testuser@example.com",
            password_hash=hasher.hash("AnotherPass123"),
        )

        with pytest.raises(UniquenessError) as exc_info:
            await repository.create(duplicate)

        assert exc_info.value.status_code == 409


class TestMutations:
    @pytest.mark.asyncio
    async def test_update_password_hash(self, repository, test_user, hasher):
        new_hash = hasher.hash("BrandNew456")
        await repository.update_password_hash(test_user.id, new_hash)

        user = await repository.find_by_id(test_user.id)
        assert hasher.verify("BrandNew456", user.password_hash)

    @pytest.mark.asyncio
    async def test_set_email_verified(self, repository, user_factory):
        user = await user_factory(email="pending@example.com", email_verified=False)

        await repository.set_email_verified(user.id)

        assert (await repository.find_by_id(user.id)).email_verified is True

    @pytest.mark.asyncio
    async def test_bump_token_epoch(self, repository, test_user):
        assert await repository.bump_token_epoch(test_user.id) == 1
        assert await repository.bump_token_epoch(test_user.id) == 2

        assert (await repository.find_by_id(test_user.id)).token_epoch == 2

    @pytest.mark.asyncio
    async def test_conditional_epoch_bump(self, repository, test_user):
        assert await repository.bump_token_epoch_if(test_user.id, 0) is True
        assert test_user.token_epoch == 1

        assert await repository.bump_token_epoch_if(test_user.id, 0) is False
        assert (await repository.find_by_id(test_user.id)).token_epoch == 1

    @pytest.mark.asyncio
    async def test_conditional_epoch_bump_missing_user(self, repository):
        assert await repository.bump_token_epoch_if(999, 0) is False

    @pytest.mark.asyncio
    async def test_update_profile_keeps_empty_fields(self, repository, test_user):
        user = await repository.update_profile(test_user.id, first_name="Ada", last_name="")

        assert user.first_name == "Ada"
        assert user.last_name == "User"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,args",
        [
            ("update_password_hash", ("x",)),
            ("set_email_verified", ()),
            ("bump_token_epoch", ()),
            ("update_profile", ("Ada", "Lovelace")),
        ],
    )
    async def test_missing_user_raises_not_found(self, repository, method, args):
        with pytest.raises(NotFoundError):
            await getattr(repository, method)(999, *args)


class TestListAll:
    @pytest.mark.asyncio
    async def test_lists_in_id_order(self, repository, user_factory):
        await user_factory(email="b@example.com")
        await user_factory(email="a@example.com")

        users = await repository.list_all()

        assert [u.email for u in users] == ["b@example.com", "a@example.com"]

    @pytest.mark.asyncio
    async def test_empty(self, repository):
        assert list(await repository.list_all()) == []
