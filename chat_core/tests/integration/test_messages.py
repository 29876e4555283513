import json

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def send(client: AsyncClient, chat_id: int, headers: dict, content: str, **extra):
    response = await client.post(
        f"/api/v1/chats/{chat_id}/messages",
        headers=headers,
        json={"content": content, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_send_hello_updates_counters_and_last_message(
    client: AsyncClient, auth_header, direct_chat, test_user, test_user2
):
    message = await send(client, direct_chat["id"], auth_header, "hello")
    assert message["kind"] == "text"
    assert message["status"] == "sent"
    assert message["senderId"] == test_user.id
    assert message["sender"]["username"] == test_user.username
    assert message["readBy"] == []

    chat = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}", headers=auth_header)
    ).json()
    assert chat["lastMessage"]["id"] == message["id"]
    assert chat["unreadCount"][str(test_user2.id)] == 1
    assert chat["unreadCount"][str(test_user.id)] == 0


async def test_mark_read_resets_count_and_records_receipt(
    client: AsyncClient, auth_header, auth_header2, direct_chat, test_user2
):
    message = await send(client, direct_chat["id"], auth_header, "hello")

    response = await client.post(
        f"/api/v1/chats/{direct_chat['id']}/read", headers=auth_header2
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "chatId": direct_chat["id"], "messageId": None}

    chat = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}", headers=auth_header2)
    ).json()
    assert chat["unreadCount"][str(test_user2.id)] == 0

    page = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}/messages", headers=auth_header2)
    ).json()
    [stored] = page["messages"]
    assert stored["id"] == message["id"]
    assert [r["userId"] for r in stored["readBy"]] == [test_user2.id]
    assert stored["status"] == "read"


async def test_mark_read_twice_changes_nothing(
    client: AsyncClient, auth_header, auth_header2, direct_chat
):
    await send(client, direct_chat["id"], auth_header, "one")
    await send(client, direct_chat["id"], auth_header, "two")

    await client.post(f"/api/v1/chats/{direct_chat['id']}/read", headers=auth_header2)
    first = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}/messages", headers=auth_header2)
    ).json()
    await client.post(f"/api/v1/chats/{direct_chat['id']}/read", headers=auth_header2)
    second = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}/messages", headers=auth_header2)
    ).json()

    assert first == second


async def test_pagination_walks_history_oldest_first(
    client: AsyncClient, auth_header, direct_chat
):
    sent = [
        (await send(client, direct_chat["id"], auth_header, f"message {i}"))["id"]
        for i in range(60)
    ]

    url = f"/api/v1/chats/{direct_chat['id']}/messages"
    first = (await client.get(f"{url}?page=1&limit=20", headers=auth_header)).json()
    assert first["pagination"] == {"page": 1, "limit": 20, "total": 60, "totalPages": 3}
    assert [m["id"] for m in first["messages"]] == sent[:20]

    collected = []
    for page in (1, 2, 3):
        body = (await client.get(f"{url}?page={page}&limit=20", headers=auth_header)).json()
        collected.extend(m["id"] for m in body["messages"])
    assert collected == sent

    beyond = (await client.get(f"{url}?page=4&limit=20", headers=auth_header)).json()
    assert beyond["messages"] == []


async def test_page_limit_is_capped(client: AsyncClient, auth_header, direct_chat):
    await send(client, direct_chat["id"], auth_header, "only")
    body = (
        await client.get(
            f"/api/v1/chats/{direct_chat['id']}/messages?limit=1000", headers=auth_header
        )
    ).json()
    assert body["pagination"]["limit"] == 100


async def test_messages_require_participation(
    client: AsyncClient, auth_header, direct_chat, headers_for, user_factory
):
    outsider = await user_factory("mallory")
    response = await client.post(
        f"/api/v1/chats/{direct_chat['id']}/messages",
        headers=headers_for(outsider),
        json={"content": "let me in"},
    )
    assert response.status_code == 403

    response = await client.get(
        f"/api/v1/chats/{direct_chat['id']}/messages", headers=headers_for(outsider)
    )
    assert response.status_code == 403


async def test_message_kind_requires_its_fields(
    client: AsyncClient, auth_header, direct_chat
):
    url = f"/api/v1/chats/{direct_chat['id']}/messages"
    response = await client.post(url, headers=auth_header, json={"kind": "text"})
    assert response.status_code == 400

    response = await client.post(url, headers=auth_header, json={"kind": "image"})
    assert response.status_code == 400

    response = await client.post(
        url, headers=auth_header, json={"kind": "image", "imageUrl": "https://cdn/x.png"}
    )
    assert response.status_code == 201
    assert response.json()["imageUrl"] == "https://cdn/x.png"

    response = await client.post(
        url, headers=auth_header, json={"kind": "event-share", "eventId": "evt_42"}
    )
    assert response.status_code == 201
    assert response.json()["eventRef"] == "evt_42"


async def test_reply_must_stay_in_chat(
    client: AsyncClient, auth_header, direct_chat, test_user3
):
    other_chat = (
        await client.post(
            "/api/v1/chats/direct", headers=auth_header, json={"otherUserId": test_user3.id}
        )
    ).json()
    foreign = await send(client, other_chat["id"], auth_header, "elsewhere")
    local = await send(client, direct_chat["id"], auth_header, "here")

    response = await client.post(
        f"/api/v1/chats/{direct_chat['id']}/messages",
        headers=auth_header,
        json={"content": "re", "replyTo": foreign["id"]},
    )
    assert response.status_code == 400

    reply = await send(client, direct_chat["id"], auth_header, "re", replyTo=local["id"])
    assert reply["replyToId"] == local["id"]


async def test_delete_for_me_is_private(
    client: AsyncClient, auth_header, auth_header2, direct_chat
):
    message = await send(client, direct_chat["id"], auth_header, "secret")
    url = f"/api/v1/chats/{direct_chat['id']}/messages"

    response = await client.delete(f"/api/v1/messages/{message['id']}", headers=auth_header2)
    assert response.status_code == 200
    assert response.json()["messageId"] == message["id"]
    # idempotent
    response = await client.delete(f"/api/v1/messages/{message['id']}", headers=auth_header2)
    assert response.status_code == 200

    hidden = (await client.get(url, headers=auth_header2)).json()
    visible = (await client.get(url, headers=auth_header)).json()
    assert hidden["messages"] == []
    assert [m["id"] for m in visible["messages"]] == [message["id"]]


async def test_delete_for_everyone_by_sender_only(
    client: AsyncClient, auth_header, auth_header2, direct_chat
):
    first = await send(client, direct_chat["id"], auth_header, "keep")
    second = await send(client, direct_chat["id"], auth_header, "oops")

    response = await client.delete(
        f"/api/v1/messages/{second['id']}?forEveryone=true", headers=auth_header2
    )
    assert response.status_code == 403

    response = await client.delete(
        f"/api/v1/messages/{second['id']}?forEveryone=true", headers=auth_header
    )
    assert response.status_code == 200

    page = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}/messages", headers=auth_header2)
    ).json()
    assert [m["id"] for m in page["messages"]] == [first["id"]]

    chat = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}", headers=auth_header)
    ).json()
    assert chat["lastMessage"]["id"] == first["id"]


async def test_edit_message(client: AsyncClient, auth_header, auth_header2, direct_chat):
    message = await send(client, direct_chat["id"], auth_header, "helo")

    response = await client.put(
        f"/api/v1/messages/{message['id']}", headers=auth_header2, json={"content": "nope"}
    )
    assert response.status_code == 403

    response = await client.put(
        f"/api/v1/messages/{message['id']}", headers=auth_header, json={"content": "hello"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "hello"
    assert body["isEdited"] is True
    assert body["editedAt"] is not None


async def test_blocked_recipient_is_not_counted(
    client: AsyncClient, auth_header, auth_header2, direct_chat, test_user, test_user2
):
    response = await client.put(
        f"/api/v1/chats/{direct_chat['id']}/settings",
        headers=auth_header2,
        json={"blocked": True},
    )
    assert response.json()["blockedBy"] == [test_user2.id]

    await send(client, direct_chat["id"], auth_header, "are you there?")
    # the blocker can still write
    await send(client, direct_chat["id"], auth_header2, "go away")

    chat = (
        await client.get(f"/api/v1/chats/{direct_chat['id']}", headers=auth_header)
    ).json()
    assert chat["unreadCount"][str(test_user2.id)] == 0
    assert chat["unreadCount"][str(test_user.id)] == 1


async def test_send_publishes_to_bus(
    client: AsyncClient, auth_header, direct_chat, mock_redis, test_user2
):
    pubsub = mock_redis.pubsub()
    await pubsub.subscribe(
        f"chat:{direct_chat['id']}",
        f"chat:{direct_chat['id']}:unread_count:{test_user2.id}",
    )
    # drain subscribe confirmations
    for _ in range(2):
        await pubsub.get_message(timeout=1)

    message = await send(client, direct_chat["id"], auth_header, "hello")

    received = {}
    for _ in range(2):
        item = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1)
        assert item is not None
        received[item["channel"]] = json.loads(item["data"])
    await pubsub.aclose()

    created = received[f"chat:{direct_chat['id']}"]
    assert created["event"] == "message:new"
    assert created["data"]["id"] == message["id"]
    unread = received[f"chat:{direct_chat['id']}:unread_count:{test_user2.id}"]
    assert unread["data"] == {"chatId": direct_chat["id"], "unreadCount": 1}


async def test_unknown_message_kind_is_a_validation_error(
    client: AsyncClient, auth_header, direct_chat
):
    response = await client.post(
        f"/api/v1/chats/{direct_chat['id']}/messages",
        headers=auth_header,
        json={"kind": "video", "content": "clip"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert "kind" in response.json()["message"]
