from typing import List

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.dependencies.auth import KIND_DEPENDENCIES, AuthContext
from app.dependencies.db import get_db
from app.dependencies.gateway import get_gateway
from app.models.principal import PrincipalKind
from app.schemas.common import ApiResponse
from app.schemas.conversation import (
    ConversationCreateRequest,
    ConversationDetail,
    ConversationOut,
    MessageCreateRequest,
    MessageOut,
    ReadReceiptOut,
)
from app.services import conversation_service
from app.services.conversation_gateway import ConversationGateway


def build_conversation_router(kind: PrincipalKind) -> APIRouter:
    """
    The same conversation endpoints for every principal kind, each router guarded by
    its kind's dependency. Mounted at /api/conversations/{kind}.
    """
    router = APIRouter()
    current = KIND_DEPENDENCIES[kind]

    @router.get(
        "/",
        response_model=ApiResponse[List[ConversationOut]],
        name=f"{kind.value}_list_conversations",
        summary="List my conversations",
    )
    def list_conversations(ctx: AuthContext = Depends(current), db: Session = Depends(get_db)):
        conversations = conversation_service.list_conversations(db, ctx.principal_id, kind)
        return ApiResponse(message="Conversations retrieved successfully", data=conversations)

    @router.get(
        "/{conversation_id}",
        response_model=ApiResponse[ConversationDetail],
        name=f"{kind.value}_get_conversation",
        summary="Conversation with its messages",
    )
    def get_conversation(
            conversation_id: str,
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
    ):
        conversation = conversation_service.get_conversation(db, ctx.principal_id, kind, conversation_id)
        return ApiResponse(message="Conversation retrieved successfully", data=conversation)

    @router.post(
        "/",
        response_model=ApiResponse[ConversationOut],
        status_code=status.HTTP_201_CREATED,
        name=f"{kind.value}_create_conversation",
        summary="Start a conversation",
    )
    async def create_conversation(
            conversation_in: ConversationCreateRequest = Body(...),
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
            gateway: ConversationGateway = Depends(get_gateway),
    ):
        conversation, others = await run_in_threadpool(
            conversation_service.create_conversation, db, ctx.principal_id, kind, conversation_in
        )
        payload = conversation.model_dump(mode="json")
        for principal_id in others:
            await gateway.notify_new_conversation(principal_id, payload)
        return ApiResponse(message="Conversation created successfully", data=conversation)

    @router.post(
        "/{conversation_id}/messages",
        response_model=ApiResponse[MessageOut],
        status_code=status.HTTP_201_CREATED,
        name=f"{kind.value}_send_message",
        summary="Send a message",
    )
    async def send_message(
            conversation_id: str,
            message_in: MessageCreateRequest = Body(...),
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
            gateway: ConversationGateway = Depends(get_gateway),
    ):
        message = await run_in_threadpool(
            conversation_service.send_message, db, ctx.principal_id, kind, conversation_id, message_in.content
        )
        await gateway.broadcast_message(conversation_id, message.model_dump(mode="json"))
        return ApiResponse(message="Message sent successfully", data=message)

    @router.post(
        "/{conversation_id}/read",
        response_model=ApiResponse[ReadReceiptOut],
        name=f"{kind.value}_mark_read",
        summary="Mark the conversation as read",
    )
    def mark_as_read(
            conversation_id: str,
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
    ):
        receipt = conversation_service.mark_as_read(db, ctx.principal_id, kind, conversation_id)
        return ApiResponse(message="Messages marked as read", data=receipt)

    @router.put(
        "/{conversation_id}/leave",
        response_model=ApiResponse[None],
        name=f"{kind.value}_leave_conversation",
        summary="Leave the conversation",
    )
    def leave_conversation(
            conversation_id: str,
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
    ):
        conversation_service.leave_conversation(db, ctx.principal_id, kind, conversation_id)
        return ApiResponse(message="Left conversation successfully")

    return router
