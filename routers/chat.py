"""
Router for direct messages and conversations
"""
from fastapi import APIRouter

from dependencies import (
    ChatServiceDepends,
    CurrentUserDepends,
    FeedDepends,
    SessionFactoryDepends,
    SettingsDepends,
)
from routers.utils import retry_read, sse_response
from schemas.chat import (
    SendMessageRequest,
    MessageResponse,
    ConversationListResponse,
    ThreadResponse,
    UnreadCountResponse,
    MarkReadResponse,
    OpenConversationRequest,
    OpenConversationResponse,
)
from services.chat.requests import watch_open_requests
from services.chat.watch import watch_conversations, watch_unread_count

router = APIRouter(
    prefix="/api/chat",
    tags=["chat"]
)


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    chat_service: ChatServiceDepends,
    settings: SettingsDepends,
):
    """
    Список диалогов текущего пользователя

    One entry per counterparty with profile, last message and unread count,
    most recent first.
    """
    conversations = await retry_read(chat_service.session, settings, chat_service.list_conversations)
    return ConversationListResponse(conversations=conversations, total=len(conversations))


@router.post("/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    request: SendMessageRequest,
    chat_service: ChatServiceDepends,
):
    """Отправить сообщение"""
    return await chat_service.send_message(request.recipient_id, request.content)


@router.get("/threads/{counterparty_id}", response_model=ThreadResponse)
async def get_thread(
    counterparty_id: str,
    chat_service: ChatServiceDepends,
):
    """
    История переписки с контрагентом (старые первыми)

    Непрочитанные входящие сообщения помечаются прочитанными.
    """
    result = await chat_service.get_thread(counterparty_id)
    return ThreadResponse(counterparty_id=counterparty_id, **result)


@router.post("/messages/{message_id}/read", response_model=MarkReadResponse)
async def mark_message_read(
    message_id: str,
    chat_service: ChatServiceDepends,
):
    """Пометить сообщение прочитанным (только получатель)"""
    updated = await chat_service.mark_read(message_id)
    return MarkReadResponse(updated=updated)


@router.post("/threads/{counterparty_id}/read", response_model=MarkReadResponse)
async def mark_thread_read(
    counterparty_id: str,
    chat_service: ChatServiceDepends,
):
    """Пометить прочитанными все сообщения от контрагента"""
    updated = await chat_service.mark_all_read(counterparty_id)
    return MarkReadResponse(updated=updated)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    chat_service: ChatServiceDepends,
    settings: SettingsDepends,
):
    """Количество непрочитанных сообщений"""
    count = await retry_read(chat_service.session, settings, chat_service.unread_count)
    return UnreadCountResponse(unread_count=count)


@router.post("/open-requests", response_model=OpenConversationResponse, status_code=202)
async def open_conversation(
    request: OpenConversationRequest,
    chat_service: ChatServiceDepends,
):
    """
    Попросить открытые окна чата текущего пользователя открыть диалог

    Delivered to ``/stream/open-requests`` subscribers of the same user.
    """
    counterparty = await chat_service.request_open_conversation(
        request.counterparty_id,
        request.counterparty_name,
    )
    return OpenConversationResponse(counterparty=counterparty)


@router.get("/stream/conversations")
async def stream_conversations(
    current_user: CurrentUserDepends,
    feed: FeedDepends,
    session_factory: SessionFactoryDepends,
    settings: SettingsDepends,
):
    """
    SSE: список диалогов сразу и после каждого изменения сообщений пользователя

    Event name ``conversations``, data is the conversation list.
    """
    updates = watch_conversations(feed, session_factory, current_user, timeout=settings.store.call_timeout)
    return sse_response(
        updates,
        "conversations",
        lambda conversations: [c.model_dump(mode="json") for c in conversations],
    )


@router.get("/stream/unread-count")
async def stream_unread_count(
    current_user: CurrentUserDepends,
    feed: FeedDepends,
    session_factory: SessionFactoryDepends,
    settings: SettingsDepends,
):
    """SSE: количество непрочитанных (event ``unread_count``)"""
    updates = watch_unread_count(feed, session_factory, current_user, timeout=settings.store.call_timeout)
    return sse_response(updates, "unread_count", lambda count: {"unread_count": count})


@router.get("/stream/open-requests")
async def stream_open_requests(
    current_user: CurrentUserDepends,
    feed: FeedDepends,
):
    """SSE: запросы на открытие диалога (event ``open_conversation``)"""
    return sse_response(watch_open_requests(feed, current_user), "open_conversation", lambda request: request)
