# chat_core/api/chats.py

from fastapi import APIRouter, Depends, Query, Response

from chat_core.api.dependencies import (
    get_chat_interactor,
    get_current_user,
    get_message_interactor,
)
from chat_core.infrastructure import schemas
from chat_core.interactors.chat_interactor import ChatInteractor
from chat_core.interactors.message_interactor import MessageInteractor

router = APIRouter()


@router.post("/direct", response_model=schemas.Chat)
async def get_or_create_direct_chat(
    body: schemas.DirectChatCreate,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.get_or_create_direct(current_user.id, body.other_user_id)


@router.post("/group", response_model=schemas.Chat, status_code=201)
async def create_group_chat(
    body: schemas.GroupChatCreate,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.create_group(
        body.name, body.participant_ids, current_user.id, body.group_image
    )


@router.get("", response_model=list[schemas.Chat], include_in_schema=False)
@router.get("/", response_model=list[schemas.Chat])
async def read_chats(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.get_chats(current_user.id, skip=skip, limit=limit)


@router.get("/search", response_model=schemas.SearchResults)
async def search(
    query: str = Query(..., description="Matches chat names and text message content"),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await message_interactor.search(current_user.id, query)


@router.get("/{chat_id}", response_model=schemas.Chat)
async def read_chat(
    chat_id: int,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.get_chat(chat_id, current_user.id)


@router.put("/{chat_id}", response_model=schemas.Chat)
async def update_chat(
    chat_id: int,
    chat_update: schemas.ChatUpdate,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.update_group(chat_id, chat_update, current_user.id)


@router.post("/{chat_id}/members", response_model=schemas.Chat)
async def add_chat_member(
    chat_id: int,
    body: schemas.MemberAdd,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.add_member(chat_id, body.user_id, current_user.id)


@router.delete("/{chat_id}/members/{user_id}", status_code=204)
async def remove_chat_member(
    chat_id: int,
    user_id: int,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    await chat_interactor.remove_member(chat_id, user_id, current_user.id)
    return Response(status_code=204)


@router.put("/{chat_id}/settings", response_model=schemas.Chat)
async def update_chat_settings(
    chat_id: int,
    settings: schemas.ChatSettingsUpdate,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await chat_interactor.update_settings(chat_id, settings, current_user.id)


@router.post("/{chat_id}/messages", response_model=schemas.Message, status_code=201)
async def send_message(
    chat_id: int,
    message: schemas.MessageCreate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await message_interactor.send(chat_id, current_user.id, message)


@router.get("/{chat_id}/messages", response_model=schemas.MessagePage)
async def read_messages(
    chat_id: int,
    page: int = Query(1),
    limit: int | None = Query(None),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await message_interactor.get_messages(chat_id, current_user.id, page, limit)


@router.post("/{chat_id}/read", response_model=schemas.Acknowledgement)
async def mark_chat_read(
    chat_id: int,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    await message_interactor.mark_read(chat_id, current_user.id)
    return schemas.Acknowledgement(chat_id=chat_id)
