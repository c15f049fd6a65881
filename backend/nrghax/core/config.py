from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    """
    应用程序配置设置类，从环境变量或.env文件加载所有配置项。
    使用Pydantic进行数据验证和类型检查。

    包含服务器配置、数据库与Redis连接、匿名进度迁移和Webhook等配置项。
    """
    # Server
    BACKEND_PORT: int = 8000

    # Model configuration tells Pydantic where to find the .env file.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True
    )

    PROJECT_NAME: str = "NRGHax Progress Service"
    API_V1_STR: str = "/api/v1"

    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    DATABASE_URL: str = "sqlite:///./database.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Shared secret sent by the chat bot in X-Webhook-Secret
    WEBHOOK_SECRET: Optional[str] = None

    # Anonymous progress
    ANON_PROGRESS_TTL_DAYS: int = 90
    COMPLETION_COOLDOWN_MINUTES: int = 30

    # 登录后等待身份稳定再执行迁移（秒）
    MIGRATION_DEBOUNCE_SECONDS: float = 1.0

    # Module enable/disable flags
    ENABLE_WS_SUBSCRIBER: bool = True

# Create a single, globally accessible instance of the settings.
settings = Settings()
