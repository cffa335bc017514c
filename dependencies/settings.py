"""
Dependencies для работы с настройками приложения
"""
from typing import Annotated

from fastapi import Depends

from settings import Settings


async def get_settings() -> Settings:
    return Settings()


SettingsDepends = Annotated[Settings, Depends(get_settings)]
