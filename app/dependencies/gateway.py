from fastapi import Request

from app.services.conversation_gateway import ConversationGateway


def get_gateway(request: Request) -> ConversationGateway:
    return request.app.state.gateway
