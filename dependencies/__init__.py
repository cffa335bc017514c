"""
Dependencies для FastAPI приложения
"""
import logging
from typing import Annotated

import jwt
from fastapi import Request, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Импортируем dependencies из модулей
from dependencies.settings import SettingsDepends, get_settings
import db
from core.exceptions import TransientError
from db import get_db
from services.chat.service import ChatService
from services.deals.service import DealsService
from services.realtime import ChangeFeed

logger = logging.getLogger(__name__)


async def get_current_user(request: Request, settings: SettingsDepends) -> str:
    """
    Dependency для получения ID пользователя из bearer токена

    Токен выдается платформой авторизации (HS256, claim ``sub``).

    Raises:
        HTTPException: 401 если токен отсутствует или невалиден
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            token.strip(),
            settings.jwt_secret.get_secret_value(),
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            options={"verify_aud": bool(settings.jwt_audience)},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.debug("rejected access token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(user_id)


async def get_feed(request: Request) -> ChangeFeed:
    """Лента изменений, созданная при старте приложения"""
    return request.app.state.feed


async def get_session_factory():
    """
    Фабрика сессий для долгоживущих потоков (SSE)

    Streams outlive the request-scoped session, so every refresh opens its own.
    """
    if db.SessionLocal is None:
        raise TransientError("Database is not initialized")
    return db.SessionLocal


# Database dependency
DbDepends = Annotated[AsyncSession, Depends(get_db)]

CurrentUserDepends = Annotated[str, Depends(get_current_user)]
FeedDepends = Annotated[ChangeFeed, Depends(get_feed)]
SessionFactoryDepends = Annotated[async_sessionmaker, Depends(get_session_factory)]


async def get_deals_service(
    db: DbDepends,
    user_id: CurrentUserDepends,
    feed: FeedDepends,
    settings: SettingsDepends,
) -> DealsService:
    return DealsService(db, user_id, feed=feed, timeout=settings.store.call_timeout)


async def get_chat_service(
    db: DbDepends,
    user_id: CurrentUserDepends,
    feed: FeedDepends,
    settings: SettingsDepends,
) -> ChatService:
    return ChatService(db, user_id, feed=feed, timeout=settings.store.call_timeout)


DealsServiceDepends = Annotated[DealsService, Depends(get_deals_service)]
ChatServiceDepends = Annotated[ChatService, Depends(get_chat_service)]


# Экспортируем dependencies из модулей
__all__ = [
    "SettingsDepends", "get_settings", "DbDepends",
    "CurrentUserDepends", "FeedDepends", "SessionFactoryDepends",
    "DealsServiceDepends", "ChatServiceDepends",
]
