"""
Скрипт для запуска миграций Alembic
Использование: python run_migrations.py [команда] [аргументы]
"""
import sys

from alembic.config import Config
from alembic import command
from settings import DatabaseSettings

USAGE = """Использование:
  python run_migrations.py upgrade [revision]      - Применить миграции (по умолчанию: head)
  python run_migrations.py downgrade [revision]    - Откатить миграции (по умолчанию: -1)
  python run_migrations.py current                 - Показать текущую версию
  python run_migrations.py history                 - Показать историю миграций
  python run_migrations.py create <message>        - Создать новую миграцию
  python run_migrations.py autogenerate <message>  - Создать автоматическую миграцию"""


def _config() -> Config:
    db_settings = DatabaseSettings()
    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", db_settings.url)
    return alembic_cfg


def _arg(index: int, default=None):
    return sys.argv[index] if len(sys.argv) > index else default


def main():
    """Главная функция"""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(0)

    cmd = sys.argv[1].lower()
    alembic_cfg = _config()

    try:
        if cmd == "upgrade":
            command.upgrade(alembic_cfg, _arg(2, "head"))
        elif cmd == "downgrade":
            command.downgrade(alembic_cfg, _arg(2, "-1"))
        elif cmd == "current":
            command.current(alembic_cfg)
        elif cmd == "history":
            command.history(alembic_cfg)
        elif cmd in ("create", "autogenerate"):
            message = _arg(2)
            if not message:
                print(f"✗ Укажите сообщение для миграции: python run_migrations.py {cmd} 'описание'")
                sys.exit(1)
            command.revision(alembic_cfg, message=message, autogenerate=(cmd == "autogenerate"))
        else:
            print(f"✗ Неизвестная команда: {cmd}")
            print(USAGE)
            sys.exit(1)
    except Exception as e:
        print(f"✗ Ошибка ({cmd}): {e}")
        sys.exit(1)

    print(f"✓ {cmd}: готово")


if __name__ == "__main__":
    main()
