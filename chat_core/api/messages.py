# chat_core/api/messages.py
from fastapi import APIRouter, Depends, Query

from chat_core.api.dependencies import get_current_user, get_message_interactor
from chat_core.infrastructure import schemas
from chat_core.interactors.message_interactor import MessageInteractor

router = APIRouter()


@router.put("/{message_id}", response_model=schemas.Message)
async def update_message(
    message_id: int,
    message_update: schemas.MessageUpdate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    return await message_interactor.edit_message(
        message_id, message_update, current_user.id
    )


@router.delete("/{message_id}", response_model=schemas.Acknowledgement)
async def delete_message(
    message_id: int,
    for_everyone: bool = Query(False, alias="forEveryone"),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.User = Depends(get_current_user),
):
    if for_everyone:
        await message_interactor.delete_for_everyone(message_id, current_user.id)
    else:
        await message_interactor.delete_for_user(message_id, current_user.id)
    return schemas.Acknowledgement(message_id=message_id)
