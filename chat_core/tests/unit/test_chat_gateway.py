# chat_core/tests/unit/test_chat_gateway.py
from datetime import timedelta

import pytest

from chat_core.domain.errors import ConflictError
from chat_core.gateways.chat_gateway import ChatGateway
from chat_core.infrastructure import schemas
from chat_core.infrastructure.models import utcnow


@pytest.fixture
def chat_gateway(db_session):
    return ChatGateway(db_session)


@pytest.fixture
async def members(user_factory):
    return [await user_factory(f"member{i}") for i in range(3)]


@pytest.mark.asyncio
async def test_insert_direct_is_keyed_by_pair(chat_gateway, db_session, members):
    a, b, _ = members
    chat_id = await chat_gateway.insert_direct(a.id, b.id)
    await db_session.commit()

    with pytest.raises(ConflictError):
        await chat_gateway.insert_direct(b.id, a.id)
    await db_session.rollback()

    chat = await chat_gateway.get_direct(b.id, a.id)
    assert chat.id == chat_id
    assert chat.direct_key == f"{min(a.id, b.id)}:{max(a.id, b.id)}"
    assert [p.user_id for p in chat.participants] == sorted([a.id, b.id])


@pytest.mark.asyncio
async def test_insert_group_marks_creator_admin(chat_gateway, db_session, members):
    a, b, c = members
    chat_id = await chat_gateway.insert_group("Trip", [a.id, b.id, c.id], a.id)
    await db_session.commit()

    chat = schemas.Chat.model_validate(await chat_gateway.get_chat(chat_id))
    assert chat.kind == "group"
    assert chat.admins == [a.id]
    assert chat.unread_count == {a.id: 0, b.id: 0, c.id: 0}
    assert chat.participants[0].user.username == a.username


@pytest.mark.asyncio
async def test_increment_and_reset_unread(chat_gateway, db_session, members):
    a, b, c = members
    chat_id = await chat_gateway.insert_group("Trip", [a.id, b.id, c.id], a.id)

    assert await chat_gateway.increment_unread(chat_id, a.id) == sorted([b.id, c.id])
    assert await chat_gateway.increment_unread(chat_id, b.id) == sorted([a.id, c.id])
    await chat_gateway.reset_unread(chat_id, c.id)
    await db_session.commit()

    assert await chat_gateway.get_unread_counts(chat_id) == {a.id: 1, b.id: 1, c.id: 0}


@pytest.mark.asyncio
async def test_blockers_are_not_counted(chat_gateway, db_session, members):
    a, b, _ = members
    chat_id = await chat_gateway.insert_direct(a.id, b.id)
    await chat_gateway.set_flags(chat_id, b.id, blocked=True)

    assert await chat_gateway.increment_unread(chat_id, a.id) == []
    assert await chat_gateway.increment_unread(chat_id, b.id) == [a.id]


@pytest.mark.asyncio
async def test_last_message_pointer_only_moves_forward(chat_gateway, db_session, members):
    a, b, _ = members
    chat_id = await chat_gateway.insert_direct(a.id, b.id)
    now = utcnow()

    assert await chat_gateway.advance_last_message(chat_id, 10, now) is True
    assert await chat_gateway.advance_last_message(chat_id, 7, now + timedelta(seconds=1)) is False
    await db_session.commit()

    chat = await chat_gateway.get_chat(chat_id)
    assert chat.last_message_id == 10


@pytest.mark.asyncio
async def test_membership(chat_gateway, db_session, members, user_factory):
    a, b, c = members
    d = await user_factory("late")
    chat_id = await chat_gateway.insert_group("Trip", [a.id, b.id, c.id], a.id)

    assert await chat_gateway.add_participant(chat_id, d.id) is True
    assert await chat_gateway.add_participant(chat_id, d.id) is False
    assert await chat_gateway.is_participant(chat_id, d.id)

    assert await chat_gateway.remove_participant(chat_id, d.id) is True
    assert await chat_gateway.remove_participant(chat_id, d.id) is False
    assert not await chat_gateway.is_participant(chat_id, d.id)


@pytest.mark.asyncio
async def test_user_chats_and_search(chat_gateway, db_session, members):
    a, b, c = members
    direct_id = await chat_gateway.insert_direct(a.id, b.id)
    group_id = await chat_gateway.insert_group("Jazz 100%", [a.id, b.id, c.id], a.id)
    await chat_gateway.advance_last_message(direct_id, 1, utcnow() + timedelta(minutes=1))
    await db_session.commit()

    chats = await chat_gateway.get_user_chats(a.id)
    assert [chat.id for chat in chats] == [direct_id, group_id]
    assert [chat.id for chat in await chat_gateway.get_user_chats(c.id)] == [group_id]

    assert [chat.id for chat in await chat_gateway.search_by_name(c.id, "jazz", 10)] == [group_id]
    # the percent sign is matched literally
    assert [chat.id for chat in await chat_gateway.search_by_name(a.id, "100%", 10)] == [group_id]


@pytest.mark.asyncio
async def test_deactivate_frees_pair_key(chat_gateway, db_session, members):
    a, b, _ = members
    first = await chat_gateway.insert_direct(a.id, b.id)
    await chat_gateway.deactivate(first)
    await db_session.commit()

    assert await chat_gateway.get_direct(a.id, b.id) is None
    second = await chat_gateway.insert_direct(a.id, b.id)
    assert second != first
