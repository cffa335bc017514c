from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers.deals import router as deals_router
from routers.items import router as items_router
from routers.chat import router as chat_router
from routers.health import router as health_router
from routers.utils import rizq_error_handler
from core.exceptions import RizqError
from services.realtime import build_feed
from settings import Settings
from db import init_db, close_db

# Инициализация настроек и базы данных
settings = Settings()

# Настройка логирования
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

init_db(settings.database)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager для FastAPI app
    Выполняет код при старте и остановке приложения
    """
    # Startup: запускаем ленту изменений (для Redis - подписка на каналы)
    await app.state.feed.start()
    logger.info("%s %s started, realtime backend: %s", settings.app_name, settings.app_version, settings.realtime_backend)

    yield

    # Shutdown: закрываем подписки и пул соединений
    try:
        await app.state.feed.close()
    finally:
        await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Deals and conversations API for the Rizq freelance marketplace",
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)

# Лента изменений создается сразу, чтобы была доступна и без lifespan (тесты)
app.state.feed = build_feed(settings)

app.add_exception_handler(RizqError, rizq_error_handler)

# Настройка CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # В продакшене указать конкретные домены
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Подключение роутеров
app.include_router(health_router)
app.include_router(deals_router)
app.include_router(items_router)
app.include_router(chat_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
