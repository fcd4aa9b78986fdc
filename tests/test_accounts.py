import pytest

from dashboard_app.errors import ConflictError, NotFoundError, ValidationError
from dashboard_app.models import User
from dashboard_app.services.accounts import link_account, list_accounts


@pytest.mark.asyncio
async def test_link_creates_then_refreshes_same_item(session, user, gateway, cipher):
    first = await link_account(session, gateway, cipher, user.id, "public-a")
    assert first.item_id == "item-a"
    assert first.institution_name == "First Platypus Bank"
    assert cipher.decrypt(first.access_token) == "access-a"

    first_id = first.id
    gateway.institution_name = "Platypus Bank (renamed)"
    second = await link_account(session, gateway, cipher, user.id, "public-a")
    assert second.id == first_id
    assert cipher.decrypt(second.access_token) == "access-a-2"
    assert second.institution_name == "Platypus Bank (renamed)"

    accounts = await list_accounts(session, user.id)
    assert [a.id for a in accounts] == [first_id]
    assert cipher.decrypt(accounts[0].access_token) == "access-a-2"


@pytest.mark.asyncio
async def test_link_keeps_one_row_per_item(session, user, gateway, cipher):
    await link_account(session, gateway, cipher, user.id, "public-a")
    await link_account(session, gateway, cipher, user.id, "public-b")
    items = [a.item_id for a in await list_accounts(session, user.id)]
    assert items == ["item-a", "item-b"]


@pytest.mark.asyncio
async def test_link_rejects_item_owned_by_someone_else(session, user, gateway, cipher):
    other = User(email="sam@example.com", password_hash="x")
    session.add(other)
    await session.commit()

    await link_account(session, gateway, cipher, user.id, "public-a")
    with pytest.raises(ConflictError):
        await link_account(session, gateway, cipher, other.id, "public-a")


@pytest.mark.asyncio
async def test_link_validates_input(session, user, gateway, cipher):
    with pytest.raises(ValidationError):
        await link_account(session, gateway, cipher, user.id, "")
    with pytest.raises(NotFoundError):
        await link_account(session, gateway, cipher, user.id + 100, "public-a")
