import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Настройки бота из переменных окружения (.env)"""

    def __init__(self):
        self.BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./staff_sessions.db")

        # API планировщика задач
        self.API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:5000/api").rstrip("/")
        self.REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "15"))
        self.PAGE_SIZE: int = int(os.getenv("PAGE_SIZE", "20"))

        # Реферальные ссылки ведут на сайт регистрации
        self.APP_ORIGIN: str = os.getenv("APP_ORIGIN", "https://app.example").rstrip("/")
        self.BRAND_NAME: str = os.getenv("BRAND_NAME", "Neutrion Diet")

        # Таймеры
        self.COUNTDOWN_TICK_SECONDS: float = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1"))
        self.COPY_ACK_SECONDS: float = float(os.getenv("COPY_ACK_SECONDS", "2"))

        self.GRAPHS_DIR: str = os.getenv("GRAPHS_DIR", "graphs")


config = Config()
