from fastapi import APIRouter, Depends, HTTPException

from pairchat.services.chat_service import ChatService
from pairchat.services.errors import NotFoundError, ValidationError
from pairchat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(current_user["_id"])
    return {"items": items}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    try:
        messages = await service.get_history_for(current_user["_id"], conversation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return {"items": messages}
